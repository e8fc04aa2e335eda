"""
WhatsApp order messages.

Everything here is a pure function of its inputs: messages are rendered from
the store's template and handed back as text plus a wa.me deep link. Nothing
is sent from the server.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional
from urllib.parse import quote

from .currencies import format_money

logger = logging.getLogger(__name__)

TEMPLATE_MAX_LENGTH = 5000

DEFAULT_COUNTRY_CODE = "+974"
DEFAULT_DATE_FORMAT = "DD/MM/YYYY"
DEFAULT_TEMPLATE = (
    "مرحبا {{name}}،\n"
    "طلبك رقم {{order_number}} حالته: {{order_status}}.\n"
    "المجموع: {{total}}\n"
    "تاريخ الطلب: {{date}}\n"
    "شكراً لتسوقك معنا 🌟"
)

# app_settings keys
SETTING_ENABLED = "whatsapp_enabled"
SETTING_COUNTRY_CODE = "default_country_code"
SETTING_TEMPLATE = "whatsapp_template"
SETTING_DATE_FORMAT = "date_format"

DATE_FORMATS: dict[str, str] = {
    "DD/MM/YYYY": "%d/%m/%Y",
    "MM/DD/YYYY": "%m/%d/%Y",
    "YYYY-MM-DD": "%Y-%m-%d",
    "DD-MM-YYYY": "%d-%m-%Y",
    "MM-DD-YYYY": "%m-%d-%Y",
}

COUNTRY_CODES: dict[str, str] = {
    "+1": "US/Canada",
    "+7": "Russia",
    "+20": "Egypt",
    "+27": "South Africa",
    "+30": "Greece",
    "+31": "Netherlands",
    "+32": "Belgium",
    "+33": "France",
    "+34": "Spain",
    "+39": "Italy",
    "+41": "Switzerland",
    "+43": "Austria",
    "+44": "UK",
    "+45": "Denmark",
    "+46": "Sweden",
    "+47": "Norway",
    "+48": "Poland",
    "+49": "Germany",
    "+60": "Malaysia",
    "+61": "Australia",
    "+62": "Indonesia",
    "+63": "Philippines",
    "+64": "New Zealand",
    "+65": "Singapore",
    "+66": "Thailand",
    "+81": "Japan",
    "+82": "South Korea",
    "+84": "Vietnam",
    "+86": "China",
    "+90": "Turkey",
    "+91": "India",
    "+92": "Pakistan",
    "+212": "Morocco",
    "+213": "Algeria",
    "+216": "Tunisia",
    "+234": "Nigeria",
    "+254": "Kenya",
    "+351": "Portugal",
    "+353": "Ireland",
    "+880": "Bangladesh",
    "+961": "Lebanon",
    "+962": "Jordan",
    "+964": "Iraq",
    "+965": "Kuwait",
    "+966": "Saudi Arabia",
    "+968": "Oman",
    "+971": "United Arab Emirates",
    "+972": "Israel",
    "+973": "Bahrain",
    "+974": "Qatar",
}

_STATUS_LABELS = {
    "pending": "Pending",
    "paid": "Paid",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
    "refunded": "Refunded",
}

_VARIABLE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
_E164_PATTERN = re.compile(r"\+\d{7,15}")
_PHONE_NOISE = re.compile(r"[\s\-()]")


@dataclass(frozen=True)
class WhatsAppSettings:
    whatsapp_enabled: bool = False
    default_country_code: str = DEFAULT_COUNTRY_CODE
    whatsapp_template: str = DEFAULT_TEMPLATE
    date_format: str = DEFAULT_DATE_FORMAT

    @classmethod
    def from_app_settings(cls, values: Mapping[str, Optional[str]]) -> "WhatsAppSettings":
        """Build from the store's app_settings key/value rows; missing keys use defaults."""
        enabled = (values.get(SETTING_ENABLED) or "false").strip().lower() == "true"
        return cls(
            whatsapp_enabled=enabled,
            default_country_code=values.get(SETTING_COUNTRY_CODE) or DEFAULT_COUNTRY_CODE,
            whatsapp_template=values.get(SETTING_TEMPLATE) or DEFAULT_TEMPLATE,
            date_format=values.get(SETTING_DATE_FORMAT) or DEFAULT_DATE_FORMAT,
        )

    def to_app_settings(self) -> dict[str, str]:
        return {
            SETTING_ENABLED: "true" if self.whatsapp_enabled else "false",
            SETTING_COUNTRY_CODE: self.default_country_code,
            SETTING_TEMPLATE: self.whatsapp_template,
            SETTING_DATE_FORMAT: self.date_format,
        }


# ============================================================================
# FORMATTING
# ============================================================================

def humanize_status(status: str) -> str:
    """Known statuses get a display label; custom ones are returned unchanged."""
    return _STATUS_LABELS.get((status or "").lower(), status)


def format_currency(amount, currency: Optional[str]) -> str:
    return format_money(amount, currency or "USD")


def format_date(value: Any, date_format: str = DEFAULT_DATE_FORMAT) -> str:
    """
    Format a date, datetime or ISO-8601 string.

    Unknown formats fall back to DD/MM/YYYY.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, (date, datetime)):
        raise TypeError(f"Cannot format {type(value).__name__} as a date")
    pattern = DATE_FORMATS.get(date_format, DATE_FORMATS[DEFAULT_DATE_FORMAT])
    return value.strftime(pattern)


def render_template(template: str, variables: Mapping[str, Optional[str]]) -> str:
    """
    Substitute {{name}} placeholders.

    Placeholders without a value are removed, then all whitespace runs
    (newlines included) collapse to single spaces.
    """

    def substitute(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    result = _VARIABLE_PATTERN.sub(substitute, template or "")
    return re.sub(r"\s+", " ", result).strip()


# ============================================================================
# PHONE NUMBERS & LINKS
# ============================================================================

def normalize_phone_to_e164(phone: Optional[str], default_country_code: str) -> Optional[str]:
    """
    Normalize a phone number to E.164, or None if that is not possible.

    Spaces, dashes and parentheses are dropped. Numbers without a leading "+"
    lose one leading trunk "0" and get the default country code.

    Examples:
        ("+974 5555 1234", "+974") -> "+97455551234"
        ("05555 1234", "+974")     -> "+97455551234"
        ("12", "+974")             -> None
    """
    if not phone:
        return None
    cleaned = _PHONE_NOISE.sub("", phone)
    if not cleaned:
        return None

    if not cleaned.startswith("+"):
        if cleaned.startswith("0") and len(cleaned) > 1:
            cleaned = cleaned[1:]
        cleaned = f"{default_country_code}{cleaned}"

    if _E164_PATTERN.fullmatch(cleaned) is None:
        return None
    return cleaned


def generate_whatsapp_url(phone: str, message: str) -> str:
    number = phone.replace("+", "", 1)
    return f"https://wa.me/{number}?text={quote(message, safe='')}"


# ============================================================================
# ORDER MESSAGES
# ============================================================================

def order_variables(order, customer, settings: WhatsAppSettings) -> dict[str, str]:
    """Template variables for an order: name, order_number, order_status, total, date."""
    return {
        "name": f"{customer.first_name or ''} {customer.last_name or ''}".strip(),
        "order_number": order.order_number,
        "order_status": humanize_status(order.status),
        "total": format_currency(order.total_amount, order.currency),
        "date": format_date(order.created_at, settings.date_format),
    }


def build_order_message(order, customer, settings: WhatsAppSettings) -> str:
    return render_template(settings.whatsapp_template, order_variables(order, customer, settings))


def build_order_link(order, customer, settings: WhatsAppSettings) -> dict[str, Optional[str]]:
    """
    Message plus deep link for an order.

    ``phone`` and ``url`` are None when the customer's number cannot be
    normalized; the message is still returned so it can be copied by hand.
    """
    message = build_order_message(order, customer, settings)
    phone = normalize_phone_to_e164(customer.phone, settings.default_country_code)
    if phone is None:
        logger.debug(f"No usable phone for order {order.order_number}")
    return {
        "phone": phone,
        "message": message,
        "url": generate_whatsapp_url(phone, message) if phone else None,
    }
