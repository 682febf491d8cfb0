import pytest

from supplier_finder import (
    search_suppliers,
    supplier_countries,
    reliability_status,
    dashboard_stats,
)

SUPPLIERS = [
    {'id': 1, 'name': 'Alpha Mills', 'country': 'India', 'city': 'Surat', 'leadTime': 20,
     'reliability': 90, 'productCost': 12.0, 'rating': 4.5, 'certifications': ['GOTS']},
    {'id': 2, 'name': 'Beta Sewing', 'country': 'Vietnam', 'city': 'Hanoi', 'leadTime': 35,
     'reliability': 84, 'productCost': 9.5, 'rating': 4.5, 'certifications': []},
    {'id': 3, 'name': 'Gamma Apparel', 'country': 'India', 'city': 'Delhi', 'leadTime': 28,
     'reliability': 97, 'productCost': 15.25, 'rating': 4.9, 'certifications': ['OEKO-TEX', 'WRAP']},
]


def test_search_returns_input_records():
    results = search_suppliers(SUPPLIERS, '', {}, 'rating')
    assert [s['id'] for s in results] == [3, 1, 2]
    assert results[0] is SUPPLIERS[2]


def test_sort_ties_keep_file_order():
    results = search_suppliers(SUPPLIERS, '', {}, 'rating')
    assert [s['id'] for s in results if s['rating'] == 4.5] == [1, 2]


def test_search_text_matches_city_case_insensitively():
    assert [s['id'] for s in search_suppliers(SUPPLIERS, 'HANOI')] == [2]
    assert search_suppliers(SUPPLIERS, 'nowhere') == []


def test_filters_combine():
    filters = {'country': 'India', 'maxCost': '14', 'minReliability': ''}
    assert [s['id'] for s in search_suppliers(SUPPLIERS, '', filters)] == [1]

    filters = {'certifications': 'wrap'}
    assert [s['id'] for s in search_suppliers(SUPPLIERS, '', filters)] == [3]


def test_invalid_numeric_filter_raises():
    with pytest.raises(ValueError):
        search_suppliers(SUPPLIERS, '', {'maxLeadTime': 'soon'})


def test_empty_supplier_list():
    assert search_suppliers([], 'x', {'maxCost': 5}) == []


def test_supplier_countries_first_seen_order():
    assert supplier_countries(SUPPLIERS) == ['India', 'Vietnam']


def test_reliability_status_bands():
    assert reliability_status(90) == 'status-low'
    assert reliability_status(85) == 'status-medium'
    assert reliability_status(84) == 'status-high'


def test_dashboard_stats():
    stats = dashboard_stats(SUPPLIERS, [{'id': 1}], None)
    assert stats['stats'] == {
        'total_suppliers': 3,
        'avg_lead_time': 28,
        'avg_cost': 12.25,
        'active_routes': 1
    }
    assert stats['recent_activity'] == []
    # dashboard badges use strict thresholds
    assert [s['reliability_status'] for s in stats['top_suppliers']] == ['status-medium', 'status-high', 'status-low']


def test_dashboard_stats_without_suppliers():
    stats = dashboard_stats([], [], [])
    assert stats['stats']['avg_lead_time'] == 0
    assert stats['top_suppliers'] == []


def test_dashboard_average_cost_rounds_ties_up():
    suppliers = [{'id': 1, 'name': 'Tie', 'leadTime': 10, 'reliability': 90, 'productCost': 0.125}]
    assert dashboard_stats(suppliers, [])['stats']['avg_cost'] == 0.13
