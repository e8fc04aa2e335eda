"""Invoice HTML rendering."""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from orderdesk.invoice import (
    InvoiceBranding,
    InvoiceCustomer,
    InvoiceLine,
    InvoiceOrder,
    invoice_totals,
    render_invoice_html,
)


def make_order(**overrides) -> InvoiceOrder:
    data = {
        "order_number": "ORD-000007",
        "created_at": datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc),
        "currency": "USD",
        "customer": InvoiceCustomer(first_name="Sara", last_name="Ali", phone="+97455551234", city="Doha"),
    }
    data.update(overrides)
    return InvoiceOrder(**data)


LINES = [
    InvoiceLine(description="Rose bouquet", quantity=2, unit_price=Decimal("15.00"), total_price=Decimal("30.00")),
    InvoiceLine(description="Card", quantity=1, unit_price=Decimal("2.50"), total_price=Decimal("2.50")),
]


class TestInvoiceTotals:
    def test_totals(self):
        assert invoice_totals(LINES, Decimal("5")) == (Decimal("32.50"), Decimal("5"), Decimal("27.50"))

    def test_total_never_negative(self):
        _, _, total = invoice_totals(LINES, Decimal("100"))
        assert total == Decimal("0")

    def test_no_lines(self):
        assert invoice_totals([], None) == (Decimal("0"), Decimal("0"), Decimal("0"))


class TestRenderInvoice:
    def test_contains_order_details(self):
        html = render_invoice_html(make_order(), LINES, InvoiceBranding())
        assert "Invoice ORD-000007" in html
        assert "31/01/2026" in html
        assert "Sara Ali" in html
        assert "Rose bouquet" in html
        assert "USD30.00" in html
        assert "USD32.50" in html

    def test_discount_row_only_when_discounted(self):
        plain = render_invoice_html(make_order(), LINES, InvoiceBranding())
        assert "Discount" not in plain

        discounted = render_invoice_html(make_order(discount=Decimal("2.50")), LINES, InvoiceBranding())
        assert "Discount" in discounted
        assert "-USD2.50" in discounted
        assert "USD30.00</span>" in discounted

    def test_fallbacks_for_missing_customer_details(self):
        order = make_order(customer=InvoiceCustomer(first_name="Walk-in"))
        html = render_invoice_html(order, LINES, InvoiceBranding())
        assert "Ask for location" in html
        assert "N/A" in html

    def test_values_are_escaped(self):
        order = make_order(
            customer=InvoiceCustomer(first_name="<script>alert(1)</script>"),
            notes="Leave at door & ring",
        )
        lines = [InvoiceLine(description="<b>Bold</b>", quantity=1, unit_price=Decimal("1"), total_price=Decimal("1"))]
        html = render_invoice_html(order, lines, InvoiceBranding(company_name="Tom & Jerry"))

        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html
        assert "&lt;b&gt;Bold&lt;/b&gt;" in html
        assert "Tom &amp; Jerry" in html
        assert "Leave at door &amp; ring" in html

    def test_branding(self):
        settings = SimpleNamespace(
            company_name="Acme Flowers",
            phone_number="+97444440000",
            facebook_account="acme.fb",
            instagram_account=None,
            snapchat_account="acme.snap",
            address_line1="West Bay",
            address_line2=None,
            city="Doha",
            country="Qatar",
            logo_url="https://cdn.example.com/logo.png",
        )
        branding = InvoiceBranding.from_settings(settings)
        assert branding.address_parts == ("West Bay", "Doha", "Qatar")
        assert len(branding.contact_lines) == 3

        html = render_invoice_html(make_order(), LINES, branding)
        assert "Acme Flowers" in html
        assert 'src="https://cdn.example.com/logo.png"' in html
        assert "West Bay<br>Doha<br>Qatar" in html

    def test_unconfigured_store_has_no_logo(self):
        html = render_invoice_html(make_order(), LINES, InvoiceBranding.from_settings(None))
        assert "company-logo\"" not in html.split("</style>")[1]
