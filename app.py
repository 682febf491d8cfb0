import os
import re
import json
import uuid
import shutil
import time
import logging
from io import BytesIO
from datetime import datetime, timedelta, timezone
from pathlib import Path
from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

from trade_data import (
    DATA_DIR,
    DatasetError,
    UserExistsError,
    UserStore,
    load_dataset,
    find_supplier,
    find_destination_port,
    normalize_email,
)
from landed_cost import (
    NoRouteError,
    TariffNotFoundError,
    estimate_landed_cost,
    compare_estimates,
    plan_routes,
    check_tariff,
    tariff_comparison,
    build_trade_plan,
)
from supplier_finder import (
    FILTER_FIELDS,
    search_suppliers,
    supplier_countries,
    reliability_status,
    dashboard_stats,
)
from reports import cost_report, cost_report_workbook, render_trade_plan_pdf, trade_plan_filename

logging.basicConfig(level=logging.INFO)
app = Flask(__name__)
CORS(app)
app.config['DATA_FOLDER'] = DATA_DIR
app.config['USERS_FILE'] = os.environ.get('TRADE_USERS_FILE') or str(Path(DATA_DIR) / 'users.json')
app.config['UPLOAD_FOLDER'] = 'runs'
app.config['STAFF_EMAIL_DOMAIN'] = os.environ.get('TRADE_STAFF_DOMAIN', 'walmart.com')
app.config['MIN_PASSWORD_LENGTH'] = 4
app.config['RUN_RETENTION_HOURS'] = 24

START_TIME = time.time()

DEFAULT_HS_CODE = '6203'
DEFAULT_QUANTITY = 5000
DEFAULT_DESTINATION_COUNTRY = 'USA'
MAP_ZOOM = 3
COMPARISON_COUNTRIES = ['India', 'Vietnam', 'Bangladesh', 'Thailand', 'Indonesia']

# Ensure runs directory exists
Path(app.config['UPLOAD_FOLDER']).mkdir(exist_ok=True)


def _dataset(name):
    return load_dataset(name, app.config['DATA_FOLDER'])


def _user_store():
    return UserStore(app.config['USERS_FILE'])


def _request_data():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _as_dict(value):
    return value if isinstance(value, dict) else {}


def _parse_numeric_value(value):
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(',', '')
    if not text:
        return None
    match = re.fullmatch(r'[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?', text)
    if not match:
        return None
    return float(match.group())


def _parse_quantity(value):
    parsed = _parse_numeric_value(value)
    if parsed is None:
        return None
    quantity = int(parsed)
    return quantity if quantity >= 1 else None


def _parse_positive(value):
    parsed = _parse_numeric_value(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def _run_dir(run_id):
    """Directory for a stored estimate or plan; None for ids that are not plain names."""
    if not run_id or secure_filename(run_id) != run_id:
        return None
    return Path(app.config['UPLOAD_FOLDER']) / run_id


def _write_run(run_id, filename, payload):
    run_dir = _run_dir(run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    with open(run_dir / filename, 'w') as f:
        json.dump(payload, f, indent=2)


def _read_run(run_id, filename):
    run_dir = _run_dir(run_id)
    if run_dir is None:
        return None
    path = run_dir / filename
    if not path.exists():
        return None
    with open(path, 'r') as f:
        return json.load(f)


def _reserve_plan_id(plan_id):
    """Claim a run directory for a new plan, stepping the millisecond stamp past stored plans."""
    prefix, stamp = plan_id.rsplit('-', 1)
    stamp = int(stamp)
    while True:
        candidate = f'{prefix}-{stamp}'
        try:
            _run_dir(candidate).mkdir(parents=True)
            return candidate
        except FileExistsError:
            stamp += 1


def clean_old_runs():
    """Remove stored estimates and plans older than the retention window"""
    runs_dir = Path(app.config['UPLOAD_FOLDER'])
    if not runs_dir.exists():
        return

    cutoff = datetime.now() - timedelta(hours=app.config['RUN_RETENTION_HOURS'])
    for run_dir in runs_dir.iterdir():
        if run_dir.is_dir():
            try:
                mtime = datetime.fromtimestamp(run_dir.stat().st_mtime)
                if mtime < cutoff:
                    shutil.rmtree(run_dir)
            except OSError as e:
                app.logger.warning(f"Could not remove old run {run_dir.name}: {e}")


@app.route('/')
def index():
    clean_old_runs()
    return 'Trade Assistant backend is running!'


@app.route('/health')
def health():
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime': time.time() - START_TIME
    })


def _dataset_response(name):
    try:
        return jsonify(_dataset(name))
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/suppliers')
def get_suppliers():
    return _dataset_response('suppliers')


@app.route('/api/tariffs')
def get_tariffs():
    return _dataset_response('tariffs')


@app.route('/api/ports')
def get_ports():
    return _dataset_response('ports')


@app.route('/api/destination-ports')
def get_destination_ports():
    return _dataset_response('destination_ports')


@app.route('/api/routes')
def get_routes():
    return _dataset_response('routes')


@app.route('/api/risk-factors')
def get_risk_factors():
    return _dataset_response('risk_factors')


@app.route('/api/sample-products')
def get_sample_products():
    return _dataset_response('sample_products')


@app.route('/api/users', methods=['GET'])
def list_users():
    try:
        return jsonify(_user_store().list_emails())
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500


@app.route('/api/users', methods=['POST'])
def create_user():
    """Register a staff account in the flat-file user store"""
    data = _request_data()
    email = normalize_email(data.get('email'))
    password = data.get('password') or ''
    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400

    domain = app.config.get('STAFF_EMAIL_DOMAIN')
    min_length = app.config['MIN_PASSWORD_LENGTH']
    if (domain and not email.endswith('@' + domain)) or len(password) < min_length:
        staff = f'an @{domain} staff email' if domain else 'a valid email'
        return jsonify({
            'error': f'Use {staff} and a password of at least {min_length} characters.'
        }), 400

    try:
        _user_store().add(email, password)
    except UserExistsError:
        return jsonify({'error': 'User already exists'}), 409
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    return jsonify({'success': True}), 201


@app.route('/api/login', methods=['POST'])
def login():
    data = _request_data()
    email = normalize_email(data.get('email'))
    password = data.get('password') or ''
    try:
        if email and _user_store().authenticate(email, password):
            app.logger.info(f"Login succeeded for {email}")
            return jsonify({'success': True, 'email': email})
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    app.logger.info(f"Login rejected for {email or '<blank>'}")
    return jsonify({'error': 'Invalid credentials.'}), 401


@app.route('/api/dashboard')
def dashboard():
    """Headline statistics, activity feed and top suppliers"""
    try:
        suppliers = _dataset('suppliers')
        routes = _dataset('routes')
        try:
            activity = _dataset('recent_activity')
        except DatasetError as e:
            app.logger.warning(f"Dashboard activity feed unavailable: {e}")
            activity = []
        return jsonify(dashboard_stats(suppliers, routes, activity))
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    except Exception as e:
        app.logger.exception('Error building dashboard')
        return jsonify({'error': str(e)}), 500


@app.route('/api/suppliers/search', methods=['GET', 'POST'])
def supplier_search():
    """Search, filter and sort suppliers (query string or JSON body)"""
    if request.method == 'POST':
        data = _request_data()
        query = data.get('query') or ''
        filters = _as_dict(data.get('filters'))
        sort_by = data.get('sort_by') or 'rating'
    else:
        query = request.args.get('q', '')
        filters = {field: request.args.get(field) for field in FILTER_FIELDS}
        sort_by = request.args.get('sort_by', 'rating')

    try:
        suppliers = _dataset('suppliers')
        matches = search_suppliers(suppliers, query, filters, sort_by)
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({
        'suppliers': [dict(s, reliability_status=reliability_status(s['reliability'])) for s in matches],
        'count': len(matches),
        'countries': supplier_countries(suppliers),
        'sort_by': sort_by
    })


@app.route('/api/tariffs/check', methods=['POST'])
def tariff_check():
    """Duty owed on a shipment for an HS code and trade lane"""
    data = _request_data()
    try:
        hs_code = str(data.get('hs_code') or '').strip()
        product_id = data.get('product_id')
        if product_id and not hs_code:
            for product in _dataset('sample_products'):
                if str(product.get('id')) == str(product_id):
                    hs_code = product['hsCode']
                    break
        origin = str(data.get('origin_country') or '').strip()
        destination = str(data.get('destination_country') or DEFAULT_DESTINATION_COUNTRY).strip()
        unit_value = _parse_positive(data.get('product_value'))
        quantity = _parse_quantity(data.get('quantity'))
        if not hs_code or not origin or unit_value is None or quantity is None:
            return jsonify({'error': 'Please fill in all required fields'}), 400

        result = check_tariff(_dataset('tariffs'), hs_code, origin, destination, unit_value, quantity)
        return jsonify(result)
    except TariffNotFoundError as e:
        return jsonify({'error': str(e)}), 404
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    except Exception as e:
        app.logger.exception('Error checking tariff')
        return jsonify({'error': str(e)}), 500


@app.route('/api/tariffs/comparison')
def tariff_comparison_table():
    raw = request.args.get('countries', '')
    countries = [c.strip() for c in raw.split(',') if c.strip()] or COMPARISON_COUNTRIES
    destination = request.args.get('destination', DEFAULT_DESTINATION_COUNTRY)
    try:
        rows = tariff_comparison(_dataset('tariffs'), countries, destination)
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    return jsonify({'countries': countries, 'destination': destination, 'rows': rows})


@app.route('/api/routes/plan', methods=['POST'])
def route_plan():
    """Rank shipping routes from a supplier to a destination port"""
    data = _request_data()
    supplier_id = data.get('supplier_id')
    destination_id = data.get('destination_id')
    if not supplier_id or not destination_id:
        return jsonify({'error': 'Select a supplier and destination port'}), 400

    try:
        supplier = find_supplier(supplier_id, app.config['DATA_FOLDER'])
        if not supplier:
            return jsonify({'error': 'Supplier not found'}), 404
        destination = find_destination_port(destination_id, app.config['DATA_FOLDER'])
        if not destination:
            return jsonify({'error': 'Destination port not found'}), 404

        options, center = plan_routes(supplier, destination, _dataset('ports'))
        app.logger.info(f"Route plan supplier={supplier['id']} destination={destination['id']} options={len(options)}")
        return jsonify({
            'route_options': options,
            'selected_route': options[0] if options else None,
            'map_center': center,
            'map_zoom': MAP_ZOOM
        })
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    except Exception as e:
        app.logger.exception('Error planning routes')
        return jsonify({'error': str(e)}), 500


@app.route('/api/costs/estimate', methods=['POST'])
def cost_estimate():
    """Compare total landed cost across the selected suppliers"""
    data = _request_data()
    supplier_ids = data.get('supplier_ids') or []
    if not supplier_ids:
        return jsonify({'error': 'Please select at least one supplier'}), 400
    quantity = _parse_quantity(data.get('quantity', DEFAULT_QUANTITY))
    if quantity is None:
        return jsonify({'error': 'Quantity must be a positive number'}), 400
    hs_code = str(data.get('hs_code') or DEFAULT_HS_CODE).strip()

    try:
        ports = _dataset('ports')
        tariffs = _dataset('tariffs')
        estimates = []
        for supplier_id in supplier_ids:
            supplier = find_supplier(supplier_id, app.config['DATA_FOLDER'])
            if not supplier:
                return jsonify({'error': f'Supplier {supplier_id} not found'}), 404
            estimates.append(estimate_landed_cost(supplier, ports, tariffs, hs_code, quantity))

        ranked, comparison = compare_estimates(estimates)
        estimate_id = str(uuid.uuid4())
        run = {
            'id': estimate_id,
            'created_at': datetime.now(timezone.utc).isoformat(),
            'product_name': data.get('product_name') or '',
            'hs_code': hs_code,
            'quantity': quantity,
            'estimates': ranked,
            'comparison': comparison
        }
        _write_run(estimate_id, 'estimate.json', run)
        app.logger.info(f"Cost estimate {estimate_id} for {len(ranked)} suppliers, hs_code={hs_code}, quantity={quantity}")

        run['report_urls'] = {
            'json': f'/download/{estimate_id}/cost-report',
            'xlsx': f'/download/{estimate_id}/cost-report.xlsx'
        }
        return jsonify(run)
    except NoRouteError as e:
        return jsonify({'error': str(e)}), 400
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    except Exception as e:
        app.logger.exception('Error estimating costs')
        return jsonify({'error': str(e)}), 500


@app.route('/download/<estimate_id>/cost-report')
def download_cost_report(estimate_id):
    """Download the condensed JSON cost estimate report"""
    run = _read_run(estimate_id, 'estimate.json')
    if run is None:
        return jsonify({'error': 'Estimate not found'}), 404

    payload = json.dumps(cost_report(run), indent=2).encode('utf-8')
    return send_file(BytesIO(payload), mimetype='application/json',
                     as_attachment=True, download_name='cost-estimate-report.json')


@app.route('/download/<estimate_id>/cost-report.xlsx')
def download_cost_report_xlsx(estimate_id):
    """Download the estimate comparison workbook"""
    run = _read_run(estimate_id, 'estimate.json')
    if run is None:
        return jsonify({'error': 'Estimate not found'}), 404

    try:
        content = cost_report_workbook(run)
    except Exception as e:
        app.logger.exception('Error building cost report workbook')
        return jsonify({'error': str(e)}), 500
    return send_file(
        BytesIO(content),
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        as_attachment=True,
        download_name='cost-estimate-report.xlsx'
    )


@app.route('/api/trade-plan', methods=['POST'])
def trade_plan():
    """Generate and store a trade plan for one supplier and product"""
    data = _request_data()
    product = _as_dict(data.get('product'))
    supplier_id = data.get('supplier_id')
    name = str(product.get('name') or '').strip()
    quantity = _parse_quantity(product.get('quantity'))
    if not supplier_id or not name or quantity is None:
        return jsonify({'error': 'Please fill in all required fields'}), 400

    unit_price = None
    if product.get('unitPrice') not in (None, ''):
        unit_price = _parse_positive(product.get('unitPrice'))
        if unit_price is None:
            return jsonify({'error': 'Unit price must be a positive number'}), 400

    order_date = None
    if data.get('order_date'):
        try:
            order_date = datetime.fromisoformat(str(data['order_date']))
        except ValueError:
            return jsonify({'error': 'order_date must be an ISO date'}), 400

    try:
        supplier = find_supplier(supplier_id, app.config['DATA_FOLDER'])
        if not supplier:
            return jsonify({'error': 'Supplier not found'}), 404

        destination_id = data.get('destination_port_id')
        if destination_id:
            destination = find_destination_port(destination_id, app.config['DATA_FOLDER'])
            if not destination:
                return jsonify({'error': 'Destination port not found'}), 404
        else:
            destinations = _dataset('destination_ports')
            if not destinations:
                return jsonify({'error': 'No destination ports configured'}), 500
            destination = destinations[0]

        plan_product = {
            'name': name,
            'hsCode': str(product.get('hsCode') or DEFAULT_HS_CODE).strip(),
            'quantity': quantity,
            'unitPrice': unit_price or 0
        }
        plan = build_trade_plan(supplier, plan_product, _dataset('ports'), destination,
                                _dataset('tariffs'), order_date)
        plan['id'] = _reserve_plan_id(plan['id'])
        _write_run(plan['id'], 'plan.json', plan)
        app.logger.info(f"Trade plan {plan['id']} generated for supplier={supplier['id']} total={plan['costs']['total_cost']:.2f}")

        plan['pdf_url'] = f"/download/{plan['id']}/trade-plan"
        return jsonify(plan)
    except NoRouteError as e:
        return jsonify({'error': str(e)}), 400
    except DatasetError as e:
        return jsonify({'error': str(e)}), 500
    except Exception as e:
        app.logger.exception('Error generating trade plan')
        return jsonify({'error': str(e)}), 500


@app.route('/api/trade-plan/<plan_id>')
def get_trade_plan(plan_id):
    plan = _read_run(plan_id, 'plan.json')
    if plan is None:
        return jsonify({'error': 'Trade plan not found'}), 404
    return jsonify(plan)


@app.route('/download/<plan_id>/trade-plan')
def download_trade_plan(plan_id):
    """Download a stored trade plan as PDF"""
    plan = _read_run(plan_id, 'plan.json')
    if plan is None:
        return jsonify({'error': 'Trade plan not found'}), 404

    try:
        content = render_trade_plan_pdf(plan)
    except Exception as e:
        app.logger.exception('Error rendering trade plan PDF')
        return jsonify({'error': str(e)}), 500
    return send_file(BytesIO(content), mimetype='application/pdf',
                     as_attachment=True, download_name=trade_plan_filename(plan))


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), threaded=True, use_reloader=False)
