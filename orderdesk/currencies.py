"""Supported store currencies and money formatting."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union


@dataclass(frozen=True)
class Currency:
    code: str
    name: str
    symbol: str
    decimals: int = 2


CURRENCIES: tuple[Currency, ...] = (
    Currency("USD", "US Dollar", "$"),
    Currency("EUR", "Euro", "€"),
    Currency("GBP", "British Pound", "£"),
    Currency("JPY", "Japanese Yen", "¥", 0),
    Currency("AUD", "Australian Dollar", "A$"),
    Currency("CAD", "Canadian Dollar", "C$"),
    Currency("CHF", "Swiss Franc", "CHF"),
    Currency("CNY", "Chinese Yuan", "¥"),
    Currency("SEK", "Swedish Krona", "kr"),
    Currency("NZD", "New Zealand Dollar", "NZ$"),
    Currency("MXN", "Mexican Peso", "$"),
    Currency("SGD", "Singapore Dollar", "S$"),
    Currency("HKD", "Hong Kong Dollar", "HK$"),
    Currency("NOK", "Norwegian Krone", "kr"),
    Currency("SAR", "Saudi Riyal", "﷼"),
    Currency("AED", "UAE Dirham", "د.إ"),
    Currency("BRL", "Brazilian Real", "R$"),
    Currency("INR", "Indian Rupee", "₹"),
    Currency("KRW", "South Korean Won", "₩", 0),
    Currency("ZAR", "South African Rand", "R"),
    Currency("RUB", "Russian Ruble", "₽"),
    Currency("TRY", "Turkish Lira", "₺"),
    Currency("PLN", "Polish Zloty", "zł"),
    Currency("CZK", "Czech Koruna", "Kč"),
    Currency("HUF", "Hungarian Forint", "Ft"),
    Currency("ILS", "Israeli Shekel", "₪"),
    Currency("CLP", "Chilean Peso", "$", 0),
    Currency("PHP", "Philippine Peso", "₱"),
    Currency("ARS", "Argentine Peso", "$"),
    Currency("COP", "Colombian Peso", "$"),
    Currency("PEN", "Peruvian Sol", "S/"),
    Currency("UYU", "Uruguayan Peso", "$U"),
    Currency("EGP", "Egyptian Pound", "£"),
    Currency("MAD", "Moroccan Dirham", "د.م."),
    Currency("TND", "Tunisian Dinar", "د.ت", 3),
    Currency("JOD", "Jordanian Dinar", "د.ا", 3),
    Currency("LBP", "Lebanese Pound", "ل.ل"),
    Currency("QAR", "Qatari Riyal", "﷼"),
    Currency("BHD", "Bahraini Dinar", ".د.ب", 3),
    Currency("KWD", "Kuwaiti Dinar", "د.ك", 3),
    Currency("OMR", "Omani Rial", "﷼", 3),
)

_BY_CODE = {currency.code: currency for currency in CURRENCIES}


def get_currency_by_code(code: Optional[str]) -> Optional[Currency]:
    if not code:
        return None
    return _BY_CODE.get(code.upper())


def is_supported_currency(code: Optional[str]) -> bool:
    return get_currency_by_code(code) is not None


def format_currency_label(currency: Currency) -> str:
    return f"{currency.code} - {currency.name}"


def currency_options() -> list[dict[str, str]]:
    """Select-box options: [{"value": "USD", "label": "USD - US Dollar"}, ...]"""
    return [
        {"value": currency.code, "label": format_currency_label(currency)}
        for currency in CURRENCIES
    ]


def format_money(amount: Union[Decimal, float, int, None], currency_code: Optional[str] = None) -> str:
    """
    Format an amount with its currency symbol and thousands separators.

    Examples:
        format_money(1234.5, "USD")  -> "$1,234.50"
        format_money(1500, "JPY")    -> "¥1,500"
        format_money(10, "CHF")      -> "CHF 10.00"
        format_money(-5, "EUR")      -> "-€5.00"
    """
    currency = get_currency_by_code(currency_code or "USD")
    code = (currency_code or "USD").upper()
    symbol = currency.symbol if currency else code
    decimals = currency.decimals if currency else 2

    value = Decimal(str(amount if amount is not None else 0))
    quantum = Decimal(1).scaleb(-decimals)
    value = value.quantize(quantum, rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    number = f"{abs(value):,.{decimals}f}"
    if symbol.isalpha() and symbol.isascii():
        return f"{sign}{symbol} {number}"
    return f"{sign}{symbol}{number}"
