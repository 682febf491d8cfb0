import math
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np

EARTH_RADIUS_KM = 6371
DEFAULT_DESTINATION_COUNTRY = 'USA'

# Landed cost components
INSURANCE_RATE = 0.005
CUSTOMS_BROKER_FEE = 150
DOCUMENTATION_FEE = 75
WAREHOUSE_FEE_PER_UNIT = 0.25
DELAY_PENALTY_PER_DAY = 100
PORT_SELECTION_COST_PER_KM = 0.1

# Route planner
ROUTE_COST_PER_KM = 0.15
ROUTE_KM_PER_DAY = 500
ROUTE_HANDLING_DAYS = 2
HIGH_RISK_COUNTRIES = ('Bangladesh', 'Indonesia')
CONGESTION_RISK = {'High': 2, 'Medium': 1}

# Tariff impact thresholds (percent)
TARIFF_HIGH_IMPACT = 20
TARIFF_MEDIUM_IMPACT = 15

TRADE_PLAN_DOCUMENTS = [
    'Commercial Invoice',
    'Packing List',
    'Bill of Lading',
    'Certificate of Origin',
    'Import License (if required)',
    'Insurance Certificate',
    'Customs Declaration'
]


class NoRouteError(Exception):
    """No transit port connects to the supplier's country."""


class TariffNotFoundError(Exception):
    pass


def haversine_km(coord1: Sequence[float], coord2: Sequence[float]) -> float:
    """Great-circle distance in km between two [lat, lng] pairs."""
    lat1, lon1 = math.radians(coord1[0]), math.radians(coord1[1])
    lat2, lon2 = math.radians(coord2[0]), math.radians(coord2[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_km_many(coords: Sequence[Sequence[float]], target: Sequence[float]) -> np.ndarray:
    """Vectorised haversine from each of ``coords`` to ``target``."""
    points = np.radians(np.asarray(coords, dtype=float).reshape(-1, 2))
    lat2, lon2 = np.radians(target[0]), np.radians(target[1])
    dlat = lat2 - points[:, 0]
    dlon = lon2 - points[:, 1]
    a = np.sin(dlat / 2) ** 2 + np.cos(points[:, 0]) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def route_key(origin, destination=DEFAULT_DESTINATION_COUNTRY):
    return f"{origin}-{destination}"


def tariff_entry(tariffs, hs_code, origin, destination=DEFAULT_DESTINATION_COUNTRY) -> Optional[Dict]:
    rates = (tariffs.get(str(hs_code).strip()) or {}).get('rates') or {}
    return rates.get(route_key(origin, destination))


def tariff_rate(tariffs, hs_code, origin, destination=DEFAULT_DESTINATION_COUNTRY) -> float:
    """Tariff rate in percent, 0 when the lane has no entry."""
    entry = tariff_entry(tariffs, hs_code, origin, destination)
    if not entry:
        return 0
    return entry.get('rate') or 0


def tariff_impact_level(rate):
    if rate > TARIFF_HIGH_IMPACT:
        return 'High'
    if rate > TARIFF_MEDIUM_IMPACT:
        return 'Medium'
    return 'Low'


def _port_selection_cost(port, country):
    leg = port.get('connectivity', {}).get(country) or {}
    return port['shippingCost'] + (leg.get('distance') or 0) * PORT_SELECTION_COST_PER_KM


def connected_ports(ports, country) -> List[Dict]:
    return [p for p in ports if (p.get('connectivity') or {}).get(country)]


def select_best_port(ports, country) -> Dict:
    """Cheapest transit port reachable from ``country``; the first port wins ties."""
    available = connected_ports(ports, country)
    if not available:
        raise NoRouteError(f"No transit port connects to {country}")
    best = available[0]
    for current in available[1:]:
        if _port_selection_cost(current, country) < _port_selection_cost(best, country):
            best = current
    return best


def estimate_landed_cost(supplier, ports, tariffs, hs_code, quantity):
    """Total landed cost for one supplier shipping ``quantity`` units to the USA."""
    country = supplier['country']
    product_cost = supplier['productCost'] * quantity

    rate = tariff_rate(tariffs, hs_code, country)
    tariff_cost = (product_cost * rate) / 100

    best_port = select_best_port(ports, country)
    shipping_cost = best_port['shippingCost']
    transit_time = best_port['connectivity'][country].get('transitTime') or 0

    insurance_cost = product_cost * INSURANCE_RATE
    warehouse_fee = quantity * WAREHOUSE_FEE_PER_UNIT
    delay_penalty = best_port['averageDelay'] * DELAY_PENALTY_PER_DAY
    risk_premium = product_cost * (100 - supplier['reliability']) / 1000

    total = (product_cost + tariff_cost + shipping_cost + insurance_cost
             + CUSTOMS_BROKER_FEE + DOCUMENTATION_FEE + warehouse_fee
             + delay_penalty + risk_premium)

    return {
        'supplier': supplier,
        'costs': {
            'product_cost': product_cost,
            'tariff_cost': tariff_cost,
            'shipping_cost': shipping_cost,
            'insurance_cost': insurance_cost,
            'customs_broker_fee': CUSTOMS_BROKER_FEE,
            'documentation_fee': DOCUMENTATION_FEE,
            'warehouse_fee': warehouse_fee,
            'delay_penalty': delay_penalty,
            'risk_premium': risk_premium,
            'total_landed_cost': total,
            'cost_per_unit': total / quantity
        },
        'logistics': {
            'port': best_port,
            'transit_time': transit_time + best_port['averageDelay'],
            'tariff_rate': rate
        },
        'savings': None
    }


def cost_ranking(index, count):
    if index == 0:
        return 'Best Value'
    if index == count - 1:
        return 'Most Expensive'
    return 'Competitive'


def compare_estimates(estimates):
    """Rank estimates cheapest first and compute savings against the priciest option.

    Mutates and returns the estimates along with a comparison summary.
    """
    if not estimates:
        return [], None
    most_expensive = max(e['costs']['total_landed_cost'] for e in estimates)
    for estimate in estimates:
        estimate['savings'] = most_expensive - estimate['costs']['total_landed_cost']

    ranked = sorted(estimates, key=lambda e: e['costs']['total_landed_cost'])
    for index, estimate in enumerate(ranked):
        estimate['ranking'] = cost_ranking(index, len(ranked))

    comparison = {
        'best_option': ranked[0],
        'worst_option': ranked[-1],
        'average_cost': sum(e['costs']['total_landed_cost'] for e in ranked) / len(ranked),
        'total_savings': ranked[0]['savings']
    }
    return ranked, comparison


def route_risk_level(congestion_level, country):
    total = CONGESTION_RISK.get(congestion_level, 0)
    if country in HIGH_RISK_COUNTRIES:
        total += 1
    if total >= 2:
        return 'High'
    if total == 1:
        return 'Medium'
    return 'Low'


def plan_routes(supplier, destination, ports):
    """Route options from a supplier to a destination port via each connected transit port."""
    country = supplier['country']
    available = connected_ports(ports, country)
    if not available:
        return [], None

    leg_distances = haversine_km_many([p['coordinates'] for p in available], destination['coordinates'])

    options = []
    for port, leg_distance in zip(available, leg_distances):
        supplier_to_port = port['connectivity'][country]
        port_to_destination = {
            'distance': float(leg_distance),
            'transitTime': math.ceil(leg_distance / ROUTE_KM_PER_DAY) + ROUTE_HANDLING_DAYS
        }
        total_distance = supplier_to_port['distance'] + port_to_destination['distance']
        total_transit = (supplier_to_port['transitTime'] + port_to_destination['transitTime']
                         + port['averageDelay'] + destination['averageDelay'])
        shipping_cost = total_distance * ROUTE_COST_PER_KM
        options.append({
            'id': f"{supplier['id']}-{port['id']}-{destination['id']}",
            'supplier': supplier,
            'intermediate_port': port,
            'destination': destination,
            'segments': [
                {'from': supplier['coordinates'], 'to': port['coordinates'], 'type': 'supplier-to-port'},
                {'from': port['coordinates'], 'to': destination['coordinates'], 'type': 'port-to-destination'}
            ],
            'total_distance': total_distance,
            'total_transit_time': total_transit,
            'total_cost': port['shippingCost'] + destination['unloadingCost'] + shipping_cost,
            'risk_level': route_risk_level(port.get('congestionLevel'), country),
            'cost_breakdown': {
                'port_charges': port['shippingCost'],
                'destination_charges': destination['unloadingCost'],
                'shipping_cost': shipping_cost
            },
            'details': {
                'supplier_to_port': supplier_to_port,
                'port_to_destination': port_to_destination,
                'port_delay': port['averageDelay'],
                'destination_delay': destination['averageDelay'],
                'expected_delays': port['averageDelay'] + destination['averageDelay']
            }
        })

    options.sort(key=lambda o: o['total_cost'])
    return options, map_center(options[0])


def map_center(option):
    points = [s['from'] for s in option['segments']] + [s['to'] for s in option['segments']]
    center = np.asarray(points, dtype=float).mean(axis=0)
    return [float(center[0]), float(center[1])]


def check_tariff(tariffs, hs_code, origin, destination, unit_value, quantity):
    entry = tariff_entry(tariffs, hs_code, origin, destination)
    key = route_key(origin, destination)
    if not entry:
        raise TariffNotFoundError(f"No tariff data available for {key} with HS Code {hs_code}")

    rate = entry['rate']
    total_value = unit_value * quantity
    tariff_amount = (total_value * rate) / 100
    return {
        'route_key': key,
        'tariff_rate': rate,
        'description': entry.get('description'),
        'total_value': total_value,
        'tariff_amount': tariff_amount,
        'total_cost_with_tariff': total_value + tariff_amount,
        'per_unit_tariff': tariff_amount / quantity,
        'impact_level': tariff_impact_level(rate),
        'hs_code': hs_code,
        'origin_country': origin,
        'destination_country': destination,
        'quantity': quantity
    }


def tariff_comparison(tariffs, countries, destination=DEFAULT_DESTINATION_COUNTRY):
    rows = []
    for hs_code, data in tariffs.items():
        rates = (data or {}).get('rates') or {}
        row = {'hs_code': hs_code}
        for country in countries:
            entry = rates.get(route_key(country, destination))
            row[country] = entry.get('rate') if entry else None
        rows.append(row)
    return rows


def reliability_risk(reliability):
    if reliability > 90:
        return 'Low'
    if reliability > 85:
        return 'Medium'
    return 'High'


def build_trade_plan(supplier, product, ports, destination, tariffs, order_date=None):
    """Assemble a full trade plan: route, costs, timeline, documents and risks.

    ``product`` carries ``name``, ``hsCode``, ``quantity`` and an optional
    ``unitPrice`` that overrides the supplier's quoted unit cost.
    """
    order_date = order_date or datetime.now(timezone.utc)
    country = supplier['country']
    transit_port = select_best_port(ports, country)

    quantity = product['quantity']
    hs_code = product.get('hsCode')
    unit_price = product.get('unitPrice') or supplier['productCost']
    product_cost = unit_price * quantity
    rate = tariff_rate(tariffs, hs_code, country)

    costs = {
        'product_cost': product_cost,
        'tariff_cost': (product_cost * rate) / 100,
        'shipping_cost': transit_port['shippingCost'],
        'insurance_cost': product_cost * INSURANCE_RATE,
        'customs_fees': CUSTOMS_BROKER_FEE + DOCUMENTATION_FEE,
        'warehouse_fees': quantity * WAREHOUSE_FEE_PER_UNIT,
    }
    costs['total_cost'] = sum(costs.values())

    lead_time = supplier['leadTime']
    transit_time = transit_port['connectivity'][country].get('transitTime') or 0
    total_lead_time = lead_time + transit_time + transit_port['averageDelay'] + destination['averageDelay']

    def _after(days):
        return (order_date + timedelta(days=days)).isoformat()

    timeline = {
        'order_date': order_date.isoformat(),
        'production_start': _after(2),
        'production_complete': _after(lead_time),
        'shipment_departure': _after(lead_time + 2),
        'port_arrival': _after(lead_time + transit_time + 5),
        'customs_clearance': _after(lead_time + transit_time + 8),
        'delivery_date': _after(total_lead_time),
        'total_lead_time': total_lead_time
    }

    return {
        'id': f"TP-{int(time.time() * 1000)}",
        'generated_at': datetime.now(timezone.utc).isoformat(),
        'supplier': supplier,
        'product': dict(product, unitPrice=unit_price),
        'route': {
            'transit_port': transit_port,
            'destination_port': destination
        },
        'costs': costs,
        'timeline': timeline,
        'documents': list(TRADE_PLAN_DOCUMENTS),
        'compliance_requirements': [
            f"HS Code: {hs_code}",
            f"Tariff Rate: {rate}%",
            'FDA Registration (if applicable)',
            'CPSC Compliance (if applicable)',
            'Customs Bond Required',
            'ISF Filing (10+2 Rule)'
        ],
        'risk_factors': [
            {
                'risk': 'Currency Fluctuation',
                'level': 'High' if country == 'India' else 'Medium',
                'mitigation': 'Consider forward contract for large orders'
            },
            {
                'risk': 'Port Congestion',
                'level': transit_port.get('congestionLevel'),
                'mitigation': 'Monitor port conditions and have backup routes'
            },
            {
                'risk': 'Supplier Reliability',
                'level': reliability_risk(supplier['reliability']),
                'mitigation': 'Regular communication and milestone tracking'
            }
        ]
    }
