import pytest
import json
import tempfile
import shutil
from io import BytesIO
from pathlib import Path
from app import app, clean_old_runs

SOURCE_DATA = Path(__file__).resolve().parents[1] / 'data'


@pytest.fixture
def data_dir(tmp_path):
    target = tmp_path / 'data'
    shutil.copytree(SOURCE_DATA, target)
    return target


@pytest.fixture
def client(data_dir):
    app.config['TESTING'] = True
    app.config['DATA_FOLDER'] = str(data_dir)
    app.config['USERS_FILE'] = str(data_dir / 'users.json')
    app.config['STAFF_EMAIL_DOMAIN'] = 'walmart.com'
    app.config['UPLOAD_FOLDER'] = tempfile.mkdtemp()
    with app.test_client() as client:
        yield client
    shutil.rmtree(app.config['UPLOAD_FOLDER'])


def test_index_and_health(client):
    response = client.get('/')
    assert response.status_code == 200
    assert b'backend is running' in response.data

    response = client.get('/health')
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['status'] == 'healthy'
    assert data['uptime'] >= 0
    assert 'timestamp' in data


def test_dataset_endpoints_serve_raw_files(client):
    suppliers = json.loads(client.get('/api/suppliers').data)
    assert len(suppliers) == 5
    assert suppliers[0]['name'] == 'Global Textiles Ltd'

    tariffs = json.loads(client.get('/api/tariffs').data)
    assert tariffs['6203']['rates']['China-USA']['rate'] == 27.8

    ports = json.loads(client.get('/api/ports').data)
    assert [p['name'] for p in ports] == ['Jebel Ali Port', 'Singapore Port', 'Port Klang']

    destinations = json.loads(client.get('/api/destination-ports').data)
    assert destinations[0]['unloadingCost'] == 800

    for path in ('/api/routes', '/api/risk-factors', '/api/sample-products'):
        response = client.get(path)
        assert response.status_code == 200, path
        assert json.loads(response.data)


def test_cors_header_present(client):
    response = client.get('/api/ports', headers={'Origin': 'http://localhost:5173'})
    assert response.headers.get('Access-Control-Allow-Origin') in ('*', 'http://localhost:5173')


def test_missing_dataset_returns_load_error(client, data_dir):
    (data_dir / 'suppliers.json').unlink()
    response = client.get('/api/suppliers')
    assert response.status_code == 500
    assert json.loads(response.data)['error'] == 'Failed to load suppliers data'


def test_corrupt_dataset_returns_parse_error(client, data_dir):
    (data_dir / 'tariffs.json').write_text('{not json')
    response = client.get('/api/tariffs')
    assert response.status_code == 500
    assert json.loads(response.data)['error'] == 'Error parsing tariffs data'


def test_user_registration_and_login(client, data_dir):
    response = client.post('/api/users', json={'email': 'Buyer@Walmart.com', 'password': 'secret'})
    assert response.status_code == 201
    assert json.loads(response.data) == {'success': True}

    response = client.get('/api/users')
    assert json.loads(response.data) == ['buyer@walmart.com']

    stored = json.loads((data_dir / 'users.json').read_text())
    assert stored[0]['email'] == 'buyer@walmart.com'
    assert 'secret' not in json.dumps(stored)

    response = client.post('/api/users', json={'email': 'buyer@walmart.com', 'password': 'other'})
    assert response.status_code == 409

    response = client.post('/api/login', json={'email': 'buyer@walmart.com', 'password': 'secret'})
    assert response.status_code == 200
    assert json.loads(response.data)['email'] == 'buyer@walmart.com'

    response = client.post('/api/login', json={'email': 'buyer@walmart.com', 'password': 'wrong'})
    assert response.status_code == 401
    assert json.loads(response.data)['error'] == 'Invalid credentials.'


def test_user_registration_validation(client):
    response = client.post('/api/users', json={'email': 'buyer@walmart.com'})
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Email and password required'

    response = client.post('/api/users', json={'email': 'someone@example.com', 'password': 'secret'})
    assert response.status_code == 400

    response = client.post('/api/users', json={'email': 'buyer@walmart.com', 'password': 'abc'})
    assert response.status_code == 400

    app.config['STAFF_EMAIL_DOMAIN'] = ''
    response = client.post('/api/users', json={'email': 'someone@example.com', 'password': 'secret'})
    assert response.status_code == 201


def test_users_file_created_on_first_registration(client, data_dir):
    (data_dir / 'users.json').unlink()
    assert json.loads(client.get('/api/users').data) == []
    response = client.post('/api/users', json={'email': 'ops@walmart.com', 'password': 'secret'})
    assert response.status_code == 201
    assert (data_dir / 'users.json').exists()


def test_dashboard_stats(client):
    data = json.loads(client.get('/api/dashboard').data)
    assert data['stats'] == {
        'total_suppliers': 5,
        'avg_lead_time': 30,
        'avg_cost': 18.7,
        'active_routes': 3
    }
    assert len(data['recent_activity']) == 4
    statuses = [s['reliability_status'] for s in data['top_suppliers']]
    assert statuses == ['status-low', 'status-medium', 'status-high']
    assert [a['link'] for a in data['quick_actions']] == ['/suppliers', '/tariffs', '/routes', '/costs']


def test_supplier_search_sorting(client):
    data = json.loads(client.get('/api/suppliers/search').data)
    assert [s['id'] for s in data['suppliers']] == [4, 1, 5, 2, 3]
    assert data['count'] == 5
    assert data['countries'] == ['India', 'Vietnam', 'Bangladesh', 'Thailand', 'Indonesia']

    data = json.loads(client.get('/api/suppliers/search?sort_by=cost').data)
    assert [s['id'] for s in data['suppliers']] == [3, 5, 2, 1, 4]

    data = json.loads(client.get('/api/suppliers/search?sort_by=unknown').data)
    assert [s['id'] for s in data['suppliers']] == [1, 2, 3, 4, 5]


def test_supplier_search_query_and_filters(client):
    data = json.loads(client.get('/api/suppliers/search?q=IND').data)
    assert [s['id'] for s in data['suppliers']] == [1, 5]

    data = json.loads(client.get('/api/suppliers/search?certifications=gots').data)
    assert sorted(s['id'] for s in data['suppliers']) == [1, 3]

    response = client.post('/api/suppliers/search', json={
        'filters': {'maxLeadTime': '30', 'minReliability': 90, 'maxCost': ''},
        'sort_by': 'leadTime'
    })
    data = json.loads(response.data)
    assert [s['id'] for s in data['suppliers']] == [4, 1]

    data = json.loads(client.get('/api/suppliers/search?maxCost=18').data)
    assert sorted(s['id'] for s in data['suppliers']) == [2, 3, 5]
    bangladesh = next(s for s in data['suppliers'] if s['id'] == 3)
    assert bangladesh['reliability_status'] == 'status-medium'


def test_supplier_search_rejects_bad_numbers(client):
    response = client.get('/api/suppliers/search?maxCost=abc')
    assert response.status_code == 400


def test_tariff_check(client):
    response = client.post('/api/tariffs/check', json={
        'hs_code': '6203',
        'origin_country': 'India',
        'product_value': '19.50',
        'quantity': '1000'
    })
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['route_key'] == 'India-USA'
    assert data['tariff_rate'] == 16.6
    assert data['total_value'] == pytest.approx(19500)
    assert data['tariff_amount'] == pytest.approx(3237)
    assert data['total_cost_with_tariff'] == pytest.approx(22737)
    assert data['per_unit_tariff'] == pytest.approx(3.237)
    assert data['impact_level'] == 'Medium'


def test_tariff_check_uses_sample_product_hs_code(client):
    response = client.post('/api/tariffs/check', json={
        'product_id': 2,
        'origin_country': 'Bangladesh',
        'product_value': 10,
        'quantity': 10
    })
    data = json.loads(response.data)
    assert data['hs_code'] == '6204'
    assert data['impact_level'] == 'Low'


def test_tariff_check_errors(client):
    response = client.post('/api/tariffs/check', json={'hs_code': '6203', 'origin_country': 'India'})
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Please fill in all required fields'

    response = client.post('/api/tariffs/check', json={
        'hs_code': '6203',
        'origin_country': 'Mexico',
        'product_value': 5,
        'quantity': 10
    })
    assert response.status_code == 404
    assert json.loads(response.data)['error'] == 'No tariff data available for Mexico-USA with HS Code 6203'

    for bad in ({'product_value': 5, 'quantity': '0.5'}, {'product_value': '-5', 'quantity': 10}, {'product_value': 0, 'quantity': 10}):
        response = client.post('/api/tariffs/check', json=dict(bad, hs_code='6203', origin_country='India'))
        assert response.status_code == 400, bad
        assert json.loads(response.data)['error'] == 'Please fill in all required fields'


def test_tariff_comparison_table(client):
    data = json.loads(client.get('/api/tariffs/comparison').data)
    rows = {row['hs_code']: row for row in data['rows']}
    assert rows['6203']['Vietnam'] == 17.0
    assert rows['6204']['Thailand'] == 14.1

    data = json.loads(client.get('/api/tariffs/comparison?countries=China').data)
    rows = {row['hs_code']: row for row in data['rows']}
    assert rows['6203']['China'] == 27.8
    assert rows['6204']['China'] is None


def test_route_plan(client):
    response = client.post('/api/routes/plan', json={'supplier_id': '1', 'destination_id': '1'})
    assert response.status_code == 200
    data = json.loads(response.data)
    options = data['route_options']
    assert len(options) == 3
    costs = [o['total_cost'] for o in options]
    assert costs == sorted(costs)
    assert data['selected_route']['id'] == options[0]['id'] == '1-1-1'
    assert data['map_zoom'] == 3
    assert len(data['map_center']) == 2

    risk = {o['intermediate_port']['name']: o['risk_level'] for o in options}
    assert risk == {'Jebel Ali Port': 'Low', 'Singapore Port': 'Medium', 'Port Klang': 'Low'}


def test_route_plan_errors(client):
    response = client.post('/api/routes/plan', json={'supplier_id': 1})
    assert response.status_code == 400
    response = client.post('/api/routes/plan', json={'supplier_id': 99, 'destination_id': 1})
    assert response.status_code == 404
    response = client.post('/api/routes/plan', json={'supplier_id': 1, 'destination_id': 99})
    assert response.status_code == 404


def test_cost_estimate_compares_suppliers(client):
    response = client.post('/api/costs/estimate', json={
        'product_name': "Men's Cotton Jackets",
        'hs_code': '6203',
        'quantity': 5000,
        'supplier_ids': [1, 2]
    })
    assert response.status_code == 200
    data = json.loads(response.data)

    first, second = data['estimates']
    assert first['supplier']['id'] == 2
    assert first['ranking'] == 'Best Value'
    assert second['ranking'] == 'Most Expensive'
    assert first['logistics']['port']['name'] == 'Port Klang'
    assert first['costs']['total_landed_cost'] == pytest.approx(109505)
    assert second['costs']['total_landed_cost'] == pytest.approx(117827.5)
    assert second['costs']['cost_per_unit'] == pytest.approx(23.5655)
    assert second['logistics']['transit_time'] == 5

    comparison = data['comparison']
    assert comparison['average_cost'] == pytest.approx(113666.25)
    assert comparison['total_savings'] == pytest.approx(8322.5)
    assert data['report_urls']['json'] == f"/download/{data['id']}/cost-report"


def test_cost_estimate_validation(client):
    response = client.post('/api/costs/estimate', json={'supplier_ids': []})
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Please select at least one supplier'

    response = client.post('/api/costs/estimate', json={'supplier_ids': [1], 'quantity': 0})
    assert response.status_code == 400

    response = client.post('/api/costs/estimate', json={'supplier_ids': [1], 'quantity': 0.5})
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Quantity must be a positive number'

    response = client.post('/api/costs/estimate', json={'supplier_ids': [1], 'quantity': '0.5'})
    assert response.status_code == 400

    response = client.post('/api/costs/estimate', json={'supplier_ids': [42]})
    assert response.status_code == 404


def test_cost_estimate_without_connected_port(client, data_dir):
    suppliers = json.loads((data_dir / 'suppliers.json').read_text())
    suppliers[0]['country'] = 'Peru'
    (data_dir / 'suppliers.json').write_text(json.dumps(suppliers))

    response = client.post('/api/costs/estimate', json={'supplier_ids': [1]})
    assert response.status_code == 400
    assert 'Peru' in json.loads(response.data)['error']


def test_cost_report_downloads(client):
    import openpyxl

    response = client.post('/api/costs/estimate', json={
        'product_name': 'Winter Coats',
        'quantity': 2000,
        'supplier_ids': [4, 5]
    })
    estimate_id = json.loads(response.data)['id']

    response = client.get(f'/download/{estimate_id}/cost-report')
    assert response.status_code == 200
    assert 'cost-estimate-report.json' in response.headers['Content-Disposition']
    report = json.loads(response.data)
    assert report['product'] == 'Winter Coats'
    assert report['quantity'] == 2000
    assert {e['supplier'] for e in report['estimates']} == {'Thai Premium Textiles', 'Indonesian Fabric Solutions'}

    response = client.get(f'/download/{estimate_id}/cost-report.xlsx')
    assert response.status_code == 200
    wb = openpyxl.load_workbook(BytesIO(response.data))
    ws = wb['Estimates']
    headers = [cell.value for cell in ws[1]]
    assert 'Total Landed Cost' in headers
    assert ws.cell(2, headers.index('Rank') + 1).value == 'Best Value'
    assert 'Summary' in wb.sheetnames
    wb.close()

    assert client.get('/download/not-a-run/cost-report').status_code == 404


def test_trade_plan_generation_and_pdf(client):
    response = client.post('/api/trade-plan', json={
        'supplier_id': 1,
        'product': {'name': "Men's Cotton Jackets", 'hsCode': '6203', 'quantity': 5000},
        'order_date': '2025-01-01T00:00:00'
    })
    assert response.status_code == 200
    plan = json.loads(response.data)

    assert plan['id'].startswith('TP-')
    assert plan['route']['transit_port']['name'] == 'Jebel Ali Port'
    assert plan['route']['destination_port']['name'] == 'Los Angeles Port'
    assert plan['costs']['customs_fees'] == 225
    assert plan['costs']['total_cost'] == pytest.approx(116847.5)
    assert plan['timeline']['total_lead_time'] == 39
    assert plan['timeline']['delivery_date'].startswith('2025-02-09')
    assert plan['timeline']['customs_clearance'].startswith('2025-02-08')
    assert 'Tariff Rate: 16.6%' in plan['compliance_requirements']
    levels = {r['risk']: r['level'] for r in plan['risk_factors']}
    assert levels == {'Currency Fluctuation': 'High', 'Port Congestion': 'Low', 'Supplier Reliability': 'Low'}

    stored = json.loads(client.get(f"/api/trade-plan/{plan['id']}").data)
    assert stored['id'] == plan['id']

    response = client.get(plan['pdf_url'])
    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert response.data.startswith(b'%PDF')
    assert f"walmart-trade-plan-{plan['id']}.pdf" in response.headers['Content-Disposition']


def test_trade_plan_unit_price_and_destination(client):
    response = client.post('/api/trade-plan', json={
        'supplier_id': 3,
        'destination_port_id': 3,
        'product': {'name': 'Blazers', 'hsCode': '6204', 'quantity': '1000', 'unitPrice': '10'}
    })
    plan = json.loads(response.data)
    assert plan['costs']['product_cost'] == pytest.approx(10000)
    assert plan['route']['destination_port']['city'] == 'New York'
    levels = {r['risk']: r['level'] for r in plan['risk_factors']}
    assert levels['Supplier Reliability'] == 'High'
    assert levels['Currency Fluctuation'] == 'Medium'


def test_trade_plan_validation(client):
    response = client.post('/api/trade-plan', json={'supplier_id': 1, 'product': {'name': ''}})
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Please fill in all required fields'

    response = client.post('/api/trade-plan', json={'supplier_id': 9, 'product': {'name': 'X', 'quantity': 1}})
    assert response.status_code == 404

    response = client.post('/api/trade-plan', json={'supplier_id': 1, 'product': {'name': 'X', 'quantity': '0.5'}})
    assert response.status_code == 400

    response = client.post('/api/trade-plan', json={
        'supplier_id': 1,
        'product': {'name': 'X', 'quantity': 10, 'unitPrice': '-3'}
    })
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Unit price must be a positive number'

    response = client.post('/api/trade-plan', json={'supplier_id': 1, 'product': 'jackets'})
    assert response.status_code == 400
    assert json.loads(response.data)['error'] == 'Please fill in all required fields'

    assert client.get('/api/trade-plan/TP-0').status_code == 404
    assert client.get('/download/TP-0/trade-plan').status_code == 404


def test_clean_old_runs_removes_expired(client):
    import os
    import time

    runs = Path(app.config['UPLOAD_FOLDER'])
    old_run = runs / 'old-run'
    old_run.mkdir()
    fresh_run = runs / 'fresh-run'
    fresh_run.mkdir()
    stale = time.time() - 48 * 3600
    os.utime(old_run, (stale, stale))

    clean_old_runs()
    assert not old_run.exists()
    assert fresh_run.exists()


def test_non_object_json_bodies_get_json_errors(client):
    expected = {
        '/api/users': 400,
        '/api/login': 401,
        '/api/tariffs/check': 400,
        '/api/routes/plan': 400,
        '/api/costs/estimate': 400,
        '/api/trade-plan': 400,
    }
    for body in ([1, 2], 'x', 7):
        for path, status in expected.items():
            response = client.post(path, data=json.dumps(body), content_type='application/json')
            assert response.status_code == status, (path, body)
            assert 'error' in json.loads(response.data)

    response = client.post('/api/suppliers/search', data=json.dumps([1, 2]), content_type='application/json')
    assert response.status_code == 200
    assert json.loads(response.data)['count'] == 5

    response = client.post('/api/suppliers/search', json={'filters': ['India'], 'sort_by': 'cost'})
    assert response.status_code == 200
    assert [s['id'] for s in json.loads(response.data)['suppliers']] == [3, 5, 2, 1, 4]


def test_trade_plans_in_same_millisecond_get_distinct_ids(client, monkeypatch):
    from types import SimpleNamespace
    import landed_cost

    monkeypatch.setattr(landed_cost, 'time', SimpleNamespace(time=lambda: 1700000000.0))
    payload = {'supplier_id': 1, 'product': {'name': 'Jackets', 'quantity': 100}}
    first = json.loads(client.post('/api/trade-plan', json=payload).data)
    second = json.loads(client.post('/api/trade-plan', json=dict(payload, supplier_id=2)).data)

    assert first['id'] == 'TP-1700000000000'
    assert second['id'] == 'TP-1700000000001'
    assert json.loads(client.get(f"/api/trade-plan/{first['id']}").data)['supplier']['id'] == 1
    assert json.loads(client.get(f"/api/trade-plan/{second['id']}").data)['supplier']['id'] == 2
