import logging
from datetime import datetime, timezone
from io import BytesIO

import pandas as pd
from fpdf import FPDF
from openpyxl.styles import Font, PatternFill, Alignment
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

HEADER_FILL = (59, 130, 246)
REPORT_TITLE = 'WALMART TRADE PLAN'

ESTIMATE_COLUMNS = [
    ('Rank', 'ranking'),
    ('Supplier', 'supplier'),
    ('Country', 'country'),
    ('Port', 'port'),
    ('Tariff Rate (%)', 'tariff_rate'),
    ('Product Cost', 'product_cost'),
    ('Tariff Cost', 'tariff_cost'),
    ('Shipping Cost', 'shipping_cost'),
    ('Insurance', 'insurance_cost'),
    ('Customs Broker', 'customs_broker_fee'),
    ('Documentation', 'documentation_fee'),
    ('Warehouse', 'warehouse_fee'),
    ('Delay Penalty', 'delay_penalty'),
    ('Risk Premium', 'risk_premium'),
    ('Total Landed Cost', 'total_landed_cost'),
    ('Cost Per Unit', 'cost_per_unit'),
    ('Transit Time (days)', 'transit_time'),
    ('Savings', 'savings'),
]

MONEY_FIELDS = {
    'product_cost', 'tariff_cost', 'shipping_cost', 'insurance_cost', 'customs_broker_fee',
    'documentation_fee', 'warehouse_fee', 'delay_penalty', 'risk_premium', 'total_landed_cost',
    'cost_per_unit', 'savings'
}


def cost_report(estimate_run):
    """Condensed estimate export: one row per supplier."""
    return {
        'product': estimate_run.get('product_name'),
        'quantity': estimate_run.get('quantity'),
        'estimates': [
            {
                'supplier': e['supplier']['name'],
                'country': e['supplier']['country'],
                'totalCost': e['costs']['total_landed_cost'],
                'costPerUnit': e['costs']['cost_per_unit'],
                'transitTime': e['logistics']['transit_time']
            }
            for e in estimate_run.get('estimates', [])
        ]
    }


def _estimate_rows(estimate_run):
    rows = []
    for e in estimate_run.get('estimates', []):
        row = {
            'ranking': e.get('ranking'),
            'supplier': e['supplier']['name'],
            'country': e['supplier']['country'],
            'port': e['logistics']['port']['name'],
            'tariff_rate': e['logistics']['tariff_rate'],
            'transit_time': e['logistics']['transit_time'],
            'savings': e.get('savings'),
        }
        row.update(e['costs'])
        rows.append({label: row.get(key) for label, key in ESTIMATE_COLUMNS})
    return rows


def cost_report_workbook(estimate_run):
    """Render the estimate comparison as an .xlsx file and return its bytes."""
    estimates_df = pd.DataFrame(_estimate_rows(estimate_run), columns=[label for label, _ in ESTIMATE_COLUMNS])
    comparison = estimate_run.get('comparison') or {}
    best = comparison.get('best_option') or {}
    worst = comparison.get('worst_option') or {}
    summary_df = pd.DataFrame([
        ('Product', estimate_run.get('product_name') or ''),
        ('HS Code', estimate_run.get('hs_code')),
        ('Quantity', estimate_run.get('quantity')),
        ('Best Option', (best.get('supplier') or {}).get('name')),
        ('Most Expensive', (worst.get('supplier') or {}).get('name')),
        ('Average Landed Cost', comparison.get('average_cost')),
        ('Potential Savings', comparison.get('total_savings')),
        ('Generated', estimate_run.get('created_at')),
    ], columns=['Field', 'Value'])

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        estimates_df.to_excel(writer, sheet_name='Estimates', index=False)
        summary_df.to_excel(writer, sheet_name='Summary', index=False)
        for ws in writer.sheets.values():
            _style_sheet(ws)
        ws = writer.sheets['Estimates']
        for row in ws.iter_rows(min_row=2):
            for cell in row:
                if ESTIMATE_COLUMNS[cell.column - 1][1] in MONEY_FIELDS:
                    cell.number_format = '#,##0.00'
    buffer.seek(0)
    return buffer.getvalue()


def _style_sheet(ws):
    header_fill = PatternFill(start_color='3B82F6', end_color='3B82F6', fill_type='solid')
    for cell in ws[1]:
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal='center')
    for idx, column in enumerate(ws.iter_cols(min_row=1, max_row=ws.max_row), start=1):
        width = max((len(str(c.value)) for c in column if c.value is not None), default=8)
        ws.column_dimensions[get_column_letter(idx)].width = min(width + 2, 50)


def _latin1(text):
    # Core PDF fonts only cover latin-1
    return str(text).encode('latin-1', 'replace').decode('latin-1')


def _money(value):
    return f"${value:,.2f}"


def _date(value):
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime('%m/%d/%Y')


class TradePlanPDF(FPDF):
    page_margin = 20

    def add_line(self, text, size=12, style='', line_height=7):
        self.set_font('helvetica', style, size)
        self.set_x(self.page_margin)
        self.cell(0, line_height, _latin1(text), new_x='LMARGIN', new_y='NEXT')

    def section(self, title):
        self.ln(5)
        self.add_line(title, size=14, style='B')
        self.ln(2)


def render_trade_plan_pdf(plan):
    """Lay out a generated trade plan as a single PDF document and return the bytes."""
    pdf = TradePlanPDF()
    pdf.set_margins(TradePlanPDF.page_margin, TradePlanPDF.page_margin)
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    pdf.set_fill_color(*HEADER_FILL)
    pdf.rect(0, 0, pdf.w, 30, 'F')
    pdf.set_text_color(255, 255, 255)
    pdf.set_font('helvetica', 'B', 20)
    pdf.text(pdf.page_margin, 20, REPORT_TITLE)
    pdf.set_text_color(0, 0, 0)
    pdf.set_y(40)

    pdf.add_line(f"Plan ID: {plan['id']}", style='B')
    pdf.add_line(f"Generated: {_date(plan.get('generated_at') or datetime.now(timezone.utc))}")

    product = plan['product']
    pdf.section('PRODUCT INFORMATION')
    pdf.add_line(f"Product: {product.get('name')}")
    pdf.add_line(f"HS Code: {product.get('hsCode')}")
    pdf.add_line(f"Quantity: {product.get('quantity'):,} units")

    supplier = plan['supplier']
    pdf.section('SUPPLIER INFORMATION')
    pdf.add_line(f"Supplier: {supplier['name']}")
    pdf.add_line(f"Location: {supplier['city']}, {supplier['country']}")
    pdf.add_line(f"Reliability: {supplier['reliability']}%")

    route = plan['route']
    pdf.section('ROUTE')
    pdf.add_line(f"Transit Port: {route['transit_port']['name']}")
    pdf.add_line(f"Destination Port: {route['destination_port']['name']}")

    costs = plan['costs']
    other_fees = costs['total_cost'] - costs['product_cost'] - costs['tariff_cost'] - costs['shipping_cost']
    pdf.section('COST BREAKDOWN')
    pdf.add_line(f"Product Cost: {_money(costs['product_cost'])}")
    pdf.add_line(f"Tariffs: {_money(costs['tariff_cost'])}")
    pdf.add_line(f"Shipping: {_money(costs['shipping_cost'])}")
    pdf.add_line(f"Other Fees: {_money(other_fees)}")
    pdf.add_line(f"TOTAL: {_money(costs['total_cost'])}", style='B')

    timeline = plan['timeline']
    pdf.section('TIMELINE')
    pdf.add_line(f"Production Complete: {_date(timeline['production_complete'])}")
    pdf.add_line(f"Shipment Departure: {_date(timeline['shipment_departure'])}")
    pdf.add_line(f"Expected Delivery: {_date(timeline['delivery_date'])}")
    pdf.add_line(f"Total Lead Time: {timeline['total_lead_time']} days", style='B')

    pdf.section('RISK FACTORS')
    for factor in plan.get('risk_factors', []):
        pdf.add_line(f"{factor['risk']}: {factor['level']} - {factor['mitigation']}", size=10)

    logger.info(f"Rendered trade plan PDF {plan['id']}")
    return bytes(pdf.output())


def trade_plan_filename(plan):
    return f"walmart-trade-plan-{plan['id']}.pdf"
