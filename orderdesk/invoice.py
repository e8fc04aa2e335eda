"""
Invoice rendering.

render_invoice_html is a pure function: order data and the store's invoice
settings in, an HTML document out. All interpolated values are escaped by
Jinja2's autoescaping. PDF conversion is left to the browser's print dialog.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from jinja2 import DictLoader, Environment, select_autoescape


@dataclass(frozen=True)
class InvoiceLine:
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class InvoiceCustomer:
    first_name: str
    last_name: str = ""
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class InvoiceOrder:
    order_number: str
    created_at: datetime
    currency: str
    customer: InvoiceCustomer
    discount: Decimal = Decimal("0")
    notes: Optional[str] = None


@dataclass(frozen=True)
class InvoiceBranding:
    """The parts of a store's invoice settings that appear on the document."""

    company_name: Optional[str] = None
    phone_number: Optional[str] = None
    facebook_account: Optional[str] = None
    instagram_account: Optional[str] = None
    snapchat_account: Optional[str] = None
    address_parts: Sequence[str] = field(default_factory=tuple)
    logo_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "InvoiceBranding":
        """Build from an InvoiceSettings row (or None for an unconfigured store)."""
        if settings is None:
            return cls()
        parts = [
            value
            for value in (settings.address_line1, settings.address_line2, settings.city, settings.country)
            if value
        ]
        return cls(
            company_name=settings.company_name,
            phone_number=settings.phone_number,
            facebook_account=settings.facebook_account,
            instagram_account=settings.instagram_account,
            snapchat_account=settings.snapchat_account,
            address_parts=tuple(parts),
            logo_url=settings.logo_url,
        )

    @property
    def contact_lines(self) -> list[str]:
        lines = []
        if self.phone_number:
            lines.append(f"📞 {self.phone_number}")
        if self.facebook_account:
            lines.append(f"📘 {self.facebook_account}")
        if self.instagram_account:
            lines.append(f"📷 {self.instagram_account}")
        if self.snapchat_account:
            lines.append(f"👻 {self.snapchat_account}")
        return lines


INVOICE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <title>Invoice {{ order.order_number }}</title>
  <style>
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: Arial, sans-serif; font-size: 14px; line-height: 1.4; color: #333; padding: 40px 60px; }
    .invoice-container { max-width: 800px; margin: 0 auto; padding: 0 20px; }
    .header { margin-bottom: 30px; display: flex; justify-content: space-between; gap: 20px; }
    .company-logo { max-width: 120px; max-height: 80px; object-fit: contain; }
    .company-info { display: flex; flex-direction: column; gap: 8px; flex: 1; }
    .contact-item { font-size: 14px; color: #666; }
    .invoice-title-section { display: flex; justify-content: space-between; margin-bottom: 40px;
      padding-bottom: 20px; border-bottom: 2px solid #f0f0f0; }
    .invoice-title { font-size: 48px; color: #d4a574; font-weight: 300; }
    .detail-row .label, .customer-section h3, .customer-section h4, .items-table th, .notes h4 { color: #d4a574; font-weight: 600; }
    .customer-section { display: grid; grid-template-columns: 1fr 1fr; gap: 40px; margin-bottom: 40px; }
    .address { color: #666; line-height: 1.5; }
    .items-table { width: 100%; border-collapse: collapse; margin-bottom: 40px; }
    .items-table th, .items-table td { padding: 12px; border-bottom: 1px solid #f0f0f0; text-align: left; }
    .items-table th:last-child, .items-table td:last-child { text-align: right; }
    .footer-section { display: grid; grid-template-columns: 1fr 300px; gap: 40px; }
    .totals { background: #f8f8f8; padding: 24px; border-radius: 8px; }
    .total-row { display: flex; justify-content: space-between; margin-bottom: 12px; }
    .total-row.final { border-top: 2px solid #d4a574; padding-top: 16px; font-weight: 700; font-size: 18px; color: #d4a574; }
    @media print { body { padding: 20px 40px; } }
  </style>
</head>
<body>
  <div class="invoice-container">
    <div class="header">
      {% if branding.logo_url %}<img src="{{ branding.logo_url }}" alt="Company Logo" class="company-logo">{% endif %}
      <div class="company-info">
        {% if branding.company_name %}<div class="contact-item company-name"><strong>{{ branding.company_name }}</strong></div>{% endif %}
        {% for line in branding.contact_lines %}<div class="contact-item"><span>{{ line }}</span></div>{% endfor %}
        {% if branding.address_parts %}<div class="contact-item"><span>📍 {% for part in branding.address_parts %}{{ part }}{% if not loop.last %}<br>{% endif %}{% endfor %}</span></div>{% endif %}
      </div>
    </div>

    <div class="invoice-title-section">
      <h1 class="invoice-title">Invoice</h1>
      <div class="invoice-details">
        <div class="detail-row"><span class="label">Invoice #</span> <span class="value">{{ order.order_number }}</span></div>
        <div class="detail-row"><span class="label">Submitted on</span> <span class="value">{{ submitted_on }}</span></div>
      </div>
    </div>

    <div class="customer-section">
      <div class="customer-info">
        <h3>Invoice for</h3>
        <p class="customer-name">{{ customer_name }}</p>
        <h4>Address</h4>
        <p class="address">
          {{ order.customer.address_line1 or "Ask for location" }}<br>
          {% if order.customer.address_line2 %}{{ order.customer.address_line2 }}<br>{% endif %}
          {{ order.customer.city or "" }}<br>
          {{ order.customer.country or "" }}
        </p>
      </div>
      <div class="contact-info">
        <h4>Phone</h4>
        <p>{{ order.customer.phone or "N/A" }}</p>
      </div>
    </div>

    <table class="items-table">
      <thead>
        <tr><th>Description</th><th>Qty</th><th>Unit price</th><th>Total price</th></tr>
      </thead>
      <tbody>
        {% for line in lines %}
        <tr>
          <td>{{ line.description }}</td>
          <td>{{ line.quantity }}</td>
          <td>{{ money(line.unit_price) }}</td>
          <td>{{ money(line.total_price) }}</td>
        </tr>
        {% endfor %}
      </tbody>
    </table>

    <div class="footer-section">
      <div class="notes">
        {% if order.notes %}<h4>Notes:</h4><p class="order-notes">{{ order.notes }}</p>{% endif %}
      </div>
      <div class="totals">
        <div class="total-row"><span class="label">Subtotal</span> <span class="value">{{ money(subtotal) }}</span></div>
        {% if discount > 0 %}<div class="total-row discount"><span class="label">Discount</span> <span class="value">-{{ money(discount) }}</span></div>{% endif %}
        <div class="total-row final"><span class="label">Total</span> <span class="value">{{ money(total) }}</span></div>
      </div>
    </div>
  </div>
</body>
</html>
"""

_env = Environment(
    loader=DictLoader({"invoice.html": INVOICE_TEMPLATE}),
    autoescape=select_autoescape(["html"]),
)


def invoice_totals(lines: Sequence[InvoiceLine], discount) -> tuple[Decimal, Decimal, Decimal]:
    """(subtotal, discount, total); the total never goes below zero."""
    subtotal = sum((Decimal(line.total_price) for line in lines), Decimal("0"))
    discount = Decimal(discount or 0)
    total = max(subtotal - discount, Decimal("0"))
    return subtotal, discount, total


def render_invoice_html(
    order: InvoiceOrder,
    lines: Sequence[InvoiceLine],
    branding: InvoiceBranding,
) -> str:
    subtotal, discount, total = invoice_totals(lines, order.discount)

    def money(amount) -> str:
        return f"{order.currency}{Decimal(amount):.2f}"

    template = _env.get_template("invoice.html")
    return template.render(
        order=order,
        lines=lines,
        branding=branding,
        customer_name=f"{order.customer.first_name} {order.customer.last_name}".strip(),
        submitted_on=order.created_at.strftime("%d/%m/%Y"),
        subtotal=subtotal,
        discount=discount,
        total=total,
        money=money,
    )
