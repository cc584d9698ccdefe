from __future__ import annotations
from datetime import datetime
from typing import Any, Optional

from jinja2 import Environment

BRAND = {
    "name": "FIFTY-FIVE",
    "phone": "8446421463",
    "email": "fiftyfivestreetwear@gmail.com",
    "instagram": "@the.fifty.five",
}

INVOICE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Invoice #{{ order.id }}</title>
  <style>
    body { font-family: 'Arial', sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; line-height: 1.6; color: #333; }
    .header { text-align: center; margin-bottom: 40px; border-bottom: 3px solid #000; padding-bottom: 20px; }
    .company-name { font-size: 32px; font-weight: bold; letter-spacing: 2px; margin-bottom: 10px; }
    .company-contact { font-size: 14px; color: #666; margin: 5px 0; }
    .invoice-title { font-size: 28px; font-weight: bold; margin: 30px 0 20px 0; text-align: center; color: #000; }
    .invoice-info { display: flex; justify-content: space-between; margin: 30px 0; }
    .invoice-details, .customer-info { width: 48%; }
    .invoice-details h3, .customer-info h3 { margin-bottom: 15px; font-size: 18px; border-bottom: 2px solid #eee; padding-bottom: 5px; }
    .info-row { margin: 8px 0; display: flex; justify-content: space-between; }
    .info-label { font-weight: bold; color: #555; }
    .items-table { width: 100%; border-collapse: collapse; margin: 30px 0; }
    .items-table th { background-color: #000; color: white; padding: 15px 12px; text-align: left; text-transform: uppercase; font-size: 12px; letter-spacing: 1px; }
    .items-table td { border: 1px solid #ddd; padding: 12px; text-align: left; }
    .items-table tbody tr:nth-child(even) { background-color: #f9f9f9; }
    .totals-section { margin-top: 30px; border-top: 2px solid #eee; padding-top: 20px; }
    .total-row { display: flex; justify-content: space-between; margin: 8px 0; font-size: 16px; }
    .total-row.final { font-size: 20px; font-weight: bold; border-top: 2px solid #000; padding-top: 10px; margin-top: 15px; }
    .discount-row { color: #28a745; font-weight: bold; }
    .footer { margin-top: 50px; text-align: center; color: #666; border-top: 1px solid #eee; padding-top: 20px; font-size: 14px; }
    .thank-you { font-size: 18px; font-weight: bold; color: #000; margin-bottom: 10px; }
    @media print {
      body { margin: 0; padding: 15px; }
      .header, .items-table { page-break-inside: avoid; }
    }
  </style>
</head>
<body>
  <div class="header">
    <div class="company-name">{{ brand.name }}</div>
    <div class="company-contact">Phone: {{ brand.phone }}</div>
    <div class="company-contact">Email: {{ brand.email }}</div>
    <div class="company-contact">Instagram: {{ brand.instagram }}</div>
  </div>

  <div class="invoice-title">INVOICE</div>

  <div class="invoice-info">
    <div class="invoice-details">
      <h3>Invoice Details</h3>
      <div class="info-row"><span class="info-label">Invoice Number:</span><span>#{{ order.id }}</span></div>
      <div class="info-row"><span class="info-label">Date:</span><span>{{ date }}</span></div>
      <div class="info-row"><span class="info-label">Status:</span><span>{{ order.status }}</span></div>
    </div>
    <div class="customer-info">
      <h3>Bill To</h3>
      <div class="info-row"><span class="info-label">Name:</span><span>{{ customer.name }}</span></div>
      <div class="info-row"><span class="info-label">Email:</span><span>{{ customer.email }}</span></div>
      <div class="info-row"><span class="info-label">Phone:</span><span>{{ customer.phone }}</span></div>
      <div class="info-row"><span class="info-label">Address:</span><span>{{ customer.address }}</span></div>
      <div class="info-row"><span class="info-label">PIN Code:</span><span>{{ customer.pincode }}</span></div>
    </div>
  </div>

  <table class="items-table">
    <thead>
      <tr><th>Item Description</th><th>Size</th><th>Qty</th><th>Unit Price</th><th>Total</th></tr>
    </thead>
    <tbody>
      {% for item in order["items"] %}
      <tr>
        <td>{{ item.product.name }}</td>
        <td>{{ item.size }}</td>
        <td>{{ item.quantity }}</td>
        <td>{{ item.product.price | inr }}</td>
        <td>{{ (item.product.price * item.quantity) | inr }}</td>
      </tr>
      {% endfor %}
    </tbody>
  </table>

  <div class="totals-section">
    <div class="total-row"><span>Subtotal:</span><span>{{ subtotal | inr }}</span></div>
    {% if order.discount > 0 %}
    <div class="total-row discount-row">
      <span>Discount{% if order.coupon_code %} ({{ order.coupon_code }}){% endif %}:</span>
      <span>-{{ order.discount | inr }}</span>
    </div>
    {% endif %}
    <div class="total-row final"><span>Total Amount:</span><span>{{ order.total | inr }}</span></div>
  </div>

  <div class="footer">
    <div class="thank-you">Thank you for your business!</div>
    <p>For any queries, contact us at {{ brand.email }} or call {{ brand.phone }}</p>
    <p>Follow us on Instagram {{ brand.instagram }} for latest updates</p>
  </div>
</body>
</html>
"""


def group_indian(digits: str) -> str:
    """12345678 -> 1,23,45,678"""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_inr(amount: float) -> str:
    sign = "-" if amount < 0 else ""
    whole, _, fraction = f"{abs(amount):.2f}".partition(".")
    fraction = fraction.rstrip("0")
    return f"{sign}₹{group_indian(whole)}" + (f".{fraction}" if fraction else "")


def format_date(value: Any) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return f"{value.day} {value:%B %Y}"


_env = Environment(autoescape=True)
_env.filters["inr"] = format_inr
_template = _env.from_string(INVOICE_TEMPLATE)


def invoice_filename(order: dict[str, Any]) -> str:
    return f"FIFTY-FIVE-Invoice-{order['id']}.html"


def render_invoice(order: dict[str, Any], brand: Optional[dict[str, str]] = None) -> str:
    return _template.render(
        order=order,
        customer=order["customer_info"],
        subtotal=order.get("subtotal", order["total"] + order.get("discount", 0)),
        date=format_date(order["created_at"]),
        brand={**BRAND, **(brand or {})},
    )
