from datetime import datetime
from html import escape
from typing import Any, Dict

from swiftsale import customers, sales
from swiftsale.errors import NotFoundError
from swiftsale.shop_settings import get_settings
from swiftsale.utils import money

CURRENCY = "₹"


def build_bill(shop_id: str, sale_id) -> Dict[str, Any]:
    sale = sales.get_sale(shop_id, sale_id)
    try:
        customer = customers.get_customer(shop_id, sale["customer_id"])
    except NotFoundError:
        raise NotFoundError("Bill not found: the customer for this sale no longer exists.")
    return {"sale": sale, "customer": customer, "settings": get_settings(shop_id)}


def _amount(value) -> str:
    return f"{CURRENCY}{money(value):.2f}"


def _bill_date(text: str) -> str:
    try:
        return datetime.fromisoformat(text).strftime("%d-%m-%Y")
    except (TypeError, ValueError):
        return str(text or "")


def render_bill_html(bill: Dict[str, Any]) -> str:
    sale = bill["sale"]
    customer = bill["customer"]
    settings = bill["settings"] or {}

    # ================= COMPANY HEADER =================
    header = [f"<h1>{escape(settings.get('shop_name') or 'Your Shop')}</h1>"]
    if settings.get("shop_address"):
        header.append(f"<div>{escape(settings['shop_address'])}</div>")
    if settings.get("shop_phone"):
        header.append(f"<div>Phone: {escape(settings['shop_phone'])}</div>")
    if settings.get("shop_gstin"):
        header.append(f"<div>GSTIN: {escape(settings['shop_gstin'])}</div>")
    if settings.get("shop_logo_url"):
        header.insert(0, f'<img class="logo" src="{escape(settings["shop_logo_url"], quote=True)}" alt="logo">')

    # ================= CUSTOMER =================
    bill_to = [f"<strong>{escape(customer.get('name', ''))}</strong>"]
    for field in ("phone", "address"):
        if customer.get(field):
            bill_to.append(f"<div>{escape(customer[field])}</div>")

    # ================= ITEMS =================
    rows = []
    for n, item in enumerate(sale.get("items", []), start=1):
        rows.append(
            "<tr>"
            f"<td>{n}</td>"
            f"<td>{escape(item['name'])}</td>"
            f"<td class='num'>{item['quantity']}</td>"
            f"<td class='num'>{_amount(item['sale_price'])}</td>"
            f"<td class='num'>{_amount(item['sale_price'] * item['quantity'])}</td>"
            "</tr>"
        )

    # ================= TOTALS =================
    totals = [("Subtotal", _amount(sale.get("subtotal")))]
    if money(sale.get("discount")) > 0:
        totals.append(("Discount", f"-{_amount(sale.get('discount'))}"))
    totals.append((f"GST ({sale.get('tax_rate', 0)}%)", _amount(sale.get("gst_amount"))))
    totals.append(("Grand Total", _amount(sale.get("grand_total"))))
    totals.append((f"Amount Paid ({escape(sale.get('payment_mode', ''))})", _amount(sale.get("amount_paid"))))
    totals.append(("Amount Due", _amount(sale.get("due"))))
    totals_html = "".join(f"<tr><td>{label}</td><td class='num'>{value}</td></tr>" for label, value in totals)

    status = "<div class='cancelled'>CANCELLED</div>" if sale.get("cancelled") else ""
    signature = ""
    if settings.get("shop_signature_url"):
        signature = f'<img class="signature" src="{escape(settings["shop_signature_url"], quote=True)}" alt="signature">'

    return f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>Invoice {escape(sale['sale_id'])}</title>
  <style>body{{font-family:Segoe UI,Tahoma,sans-serif;max-width:800px;margin:20px auto;color:#222}} table{{width:100%;border-collapse:collapse}} th,td{{padding:6px;border-bottom:1px solid #ddd;text-align:left}} .num{{text-align:right}} .totals{{width:45%;margin-left:auto}} .logo{{height:64px}} .signature{{height:48px}} .cancelled{{color:#b00;font-weight:bold}} @media print{{button{{display:none}}}}</style>
</head>
<body>
  <header>{''.join(header)}</header>
  <h2>TAX INVOICE</h2>
  {status}
  <div>Invoice No : {escape(sale['sale_id'])}</div>
  <div>Date : {_bill_date(sale.get('date', ''))}</div>
  <h3>Bill To:</h3>
  {''.join(bill_to)}
  <table>
    <thead><tr><th>#</th><th>Item</th><th class='num'>Qty</th><th class='num'>Rate</th><th class='num'>Amount</th></tr></thead>
    <tbody>{''.join(rows)}</tbody>
  </table>
  <table class="totals">{totals_html}</table>
  <footer>{signature}<p>Thank you for your business!</p></footer>
  <button onclick="window.print()">Print</button>
</body>
</html>
"""
