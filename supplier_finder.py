import math
from decimal import Decimal, ROUND_HALF_UP

import pandas as pd

SORT_OPTIONS = {
    'rating': ('rating', False),
    'cost': ('productCost', True),
    'leadTime': ('leadTime', True),
    'reliability': ('reliability', False),
}

FILTER_FIELDS = ('country', 'maxLeadTime', 'maxCost', 'minReliability', 'certifications')

QUICK_ACTIONS = [
    {'title': 'Find Suppliers', 'description': 'Search and compare global suppliers', 'link': '/suppliers'},
    {'title': 'Check Tariffs', 'description': 'Calculate tariffs and taxes', 'link': '/tariffs'},
    {'title': 'Plan Routes', 'description': 'Optimize shipping routes', 'link': '/routes'},
    {'title': 'Estimate Costs', 'description': 'Calculate total landed costs', 'link': '/costs'},
]


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _to_int(value, field):
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {field}: {value!r}")


def _to_float(value, field):
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {field}: {value!r}")


def supplier_countries(suppliers):
    """Distinct supplier countries in first-seen order."""
    seen = []
    for supplier in suppliers:
        country = supplier.get('country')
        if country and country not in seen:
            seen.append(country)
    return seen


def search_suppliers(suppliers, query='', filters=None, sort_by='rating'):
    """Filter and sort the supplier list like the finder page does.

    Returns the matching supplier records; blank filters are ignored and an
    unknown ``sort_by`` keeps file order.
    """
    if not suppliers:
        return []
    filters = filters or {}
    df = pd.DataFrame(suppliers)
    mask = pd.Series(True, index=df.index)

    query = (query or '').strip().lower()
    if query:
        text_match = pd.Series(False, index=df.index)
        for column in ('name', 'country', 'city'):
            text_match |= df[column].fillna('').astype(str).str.lower().str.contains(query, regex=False)
        mask &= text_match

    country = filters.get('country')
    if not _blank(country):
        mask &= df['country'] == country

    max_lead_time = filters.get('maxLeadTime')
    if not _blank(max_lead_time):
        mask &= df['leadTime'] <= _to_int(max_lead_time, 'maxLeadTime')

    max_cost = filters.get('maxCost')
    if not _blank(max_cost):
        mask &= df['productCost'] <= _to_float(max_cost, 'maxCost')

    min_reliability = filters.get('minReliability')
    if not _blank(min_reliability):
        mask &= df['reliability'] >= _to_int(min_reliability, 'minReliability')

    certification = filters.get('certifications')
    if not _blank(certification):
        needle = str(certification).strip().lower()
        mask &= df['certifications'].apply(
            lambda certs: any(needle in str(c).lower() for c in (certs or []))
        )

    matched = df[mask]
    if sort_by in SORT_OPTIONS:
        column, ascending = SORT_OPTIONS[sort_by]
        matched = matched.sort_values(column, ascending=ascending, kind='stable')

    return [suppliers[i] for i in matched.index]


def reliability_status(reliability):
    """Status badge used by the finder: high reliability means low risk."""
    if reliability >= 90:
        return 'status-low'
    if reliability >= 85:
        return 'status-medium'
    return 'status-high'


def _dashboard_reliability_status(reliability):
    if reliability > 90:
        return 'status-low'
    if reliability > 85:
        return 'status-medium'
    return 'status-high'


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def _round_cents(value):
    # ties on the exact binary value round up, as toFixed(2) does
    return float(Decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def dashboard_stats(suppliers, routes, recent_activity=None):
    df = pd.DataFrame(suppliers)
    if df.empty:
        avg_lead_time = 0
        avg_cost = 0.0
    else:
        avg_lead_time = _round_half_up(float(df['leadTime'].mean()))
        avg_cost = _round_cents(float(df['productCost'].mean()))

    top_suppliers = []
    for supplier in suppliers[:3]:
        top_suppliers.append({
            'id': supplier.get('id'),
            'name': supplier.get('name'),
            'city': supplier.get('city'),
            'country': supplier.get('country'),
            'rating': supplier.get('rating'),
            'reliability': supplier.get('reliability'),
            'reliability_status': _dashboard_reliability_status(supplier.get('reliability') or 0)
        })

    return {
        'stats': {
            'total_suppliers': len(suppliers),
            'avg_lead_time': avg_lead_time,
            'avg_cost': avg_cost,
            'active_routes': len(routes)
        },
        'recent_activity': recent_activity or [],
        'top_suppliers': top_suppliers,
        'quick_actions': QUICK_ACTIONS
    }
