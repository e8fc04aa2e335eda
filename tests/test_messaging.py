"""
WhatsApp order messages and currency formatting.

All functions under test are pure; no database is involved.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from orderdesk.currencies import (
    CURRENCIES,
    currency_options,
    format_currency_label,
    format_money,
    get_currency_by_code,
    is_supported_currency,
)
from orderdesk.whatsapp import (
    DEFAULT_TEMPLATE,
    WhatsAppSettings,
    build_order_link,
    build_order_message,
    format_date,
    generate_whatsapp_url,
    humanize_status,
    normalize_phone_to_e164,
    render_template,
)


def make_order(**overrides):
    data = {
        "order_number": "ORD-000042",
        "status": "pending",
        "total_amount": Decimal("1234.5"),
        "currency": "USD",
        "created_at": datetime(2026, 3, 7, 15, 30, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return SimpleNamespace(**data)


def make_customer(**overrides):
    data = {"first_name": "Sara", "last_name": "Ali", "phone": "5555 1234"}
    data.update(overrides)
    return SimpleNamespace(**data)


# ────────────────────────────────────────────────────────────────
# Currencies
# ────────────────────────────────────────────────────────────────

class TestCurrencies:
    def test_codes_are_unique(self):
        codes = [c.code for c in CURRENCIES]
        assert len(codes) == len(set(codes))

    def test_lookup_is_case_insensitive(self):
        assert get_currency_by_code("usd").symbol == "$"
        assert is_supported_currency("QAR")
        assert not is_supported_currency("XYZ")
        assert not is_supported_currency(None)

    def test_label_and_options(self):
        assert format_currency_label(get_currency_by_code("USD")) == "USD - US Dollar"
        options = currency_options()
        assert {"value": "EUR", "label": "EUR - Euro"} in options
        assert len(options) == len(CURRENCIES)

    @pytest.mark.parametrize(
        "amount,code,expected",
        [
            (1234.5, "USD", "$1,234.50"),
            (Decimal("0"), "EUR", "€0.00"),
            (-5, "EUR", "-€5.00"),
            (1500, "JPY", "¥1,500"),
            (10, "CHF", "CHF 10.00"),
            (Decimal("1.2345"), "KWD", "د.ك1.235"),
            (None, None, "$0.00"),
            (7, "XYZ", "XYZ 7.00"),
        ],
    )
    def test_format_money(self, amount, code, expected):
        assert format_money(amount, code) == expected


# ────────────────────────────────────────────────────────────────
# Formatting Helpers
# ────────────────────────────────────────────────────────────────

class TestFormatting:
    def test_humanize_known_and_custom_status(self):
        assert humanize_status("shipped") == "Shipped"
        assert humanize_status("ready_for_pickup") == "ready_for_pickup"

    @pytest.mark.parametrize(
        "date_format,expected",
        [
            ("DD/MM/YYYY", "07/03/2026"),
            ("MM/DD/YYYY", "03/07/2026"),
            ("YYYY-MM-DD", "2026-03-07"),
            ("DD-MM-YYYY", "07-03-2026"),
            ("nonsense", "07/03/2026"),
        ],
    )
    def test_format_date(self, date_format, expected):
        assert format_date(date(2026, 3, 7), date_format) == expected

    def test_format_date_from_iso_string(self):
        assert format_date("2026-03-07T10:00:00Z", "YYYY-MM-DD") == "2026-03-07"

    def test_format_date_rejects_other_types(self):
        with pytest.raises(TypeError):
            format_date(12345)


class TestRenderTemplate:
    def test_substitutes_variables(self):
        assert render_template("Hi {{name}}, order {{order_number}}", {"name": "Sara", "order_number": "ORD-1"}) == (
            "Hi Sara, order ORD-1"
        )

    def test_missing_variables_become_empty(self):
        assert render_template("Hi {{name}} {{unknown}}!", {"name": "Sara"}) == "Hi Sara !"

    def test_whitespace_collapses(self):
        assert render_template("  Line one\n\n  line   two  ", {}) == "Line one line two"

    def test_empty_template(self):
        assert render_template("", {"name": "x"}) == ""


# ────────────────────────────────────────────────────────────────
# Phone Numbers and Links
# ────────────────────────────────────────────────────────────────

class TestPhoneNormalization:
    @pytest.mark.parametrize(
        "phone,expected",
        [
            ("+974 5555 1234", "+97455551234"),
            ("5555 1234", "+97455551234"),
            ("05555-1234", "+97455551234"),
            ("(555) 551-234", "+974555551234"),
            ("+1 (212) 555-0100", "+12125550100"),
        ],
    )
    def test_normalizes(self, phone, expected):
        assert normalize_phone_to_e164(phone, "+974") == expected

    @pytest.mark.parametrize("phone", [None, "", "   ", "12", "+12", "phone", "+1234567890123456"])
    def test_unusable_numbers(self, phone):
        assert normalize_phone_to_e164(phone, "+974") is None

    def test_url_encodes_message(self):
        url = generate_whatsapp_url("+97455551234", "Hi Sara & co?")
        assert url == "https://wa.me/97455551234?text=Hi%20Sara%20%26%20co%3F"


class TestOrderMessages:
    def test_settings_round_trip_through_app_settings(self):
        settings = WhatsAppSettings(whatsapp_enabled=True, default_country_code="+44", date_format="YYYY-MM-DD")
        assert WhatsAppSettings.from_app_settings(settings.to_app_settings()) == settings

    def test_missing_app_settings_use_defaults(self):
        settings = WhatsAppSettings.from_app_settings({})
        assert settings.whatsapp_enabled is False
        assert settings.default_country_code == "+974"
        assert settings.whatsapp_template == DEFAULT_TEMPLATE

    def test_build_order_message(self):
        settings = WhatsAppSettings(
            whatsapp_template="Dear {{name}},\n{{order_number}} is {{order_status}}. Total {{total}} ({{date}})"
        )
        message = build_order_message(make_order(), make_customer(), settings)
        assert message == "Dear Sara Ali, ORD-000042 is Pending. Total $1,234.50 (07/03/2026)"

    def test_default_template_contains_order_details(self):
        message = build_order_message(make_order(), make_customer(), WhatsAppSettings())
        assert "ORD-000042" in message
        assert "Sara Ali" in message
        assert "\n" not in message

    def test_build_order_link(self):
        link = build_order_link(make_order(), make_customer(), WhatsAppSettings(whatsapp_template="{{order_number}}"))
        assert link == {
            "phone": "+97455551234",
            "message": "ORD-000042",
            "url": "https://wa.me/97455551234?text=ORD-000042",
        }

    def test_link_without_phone_still_has_message(self):
        link = build_order_link(make_order(), make_customer(phone=None), WhatsAppSettings())
        assert link["url"] is None
        assert link["phone"] is None
        assert link["message"]
