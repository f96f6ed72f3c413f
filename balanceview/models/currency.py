"""
Currency display.

Amounts are stored as plain numbers with no currency attached; the
currency is a display preference kept in the user's profile.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

DEFAULT_SYMBOL = "$"

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "INR": "₹",
    "AUD": "A$",
    "CAD": "C$",
    "SGD": "S$",
    "CHF": "CHF",
    "KRW": "₩",
    "THB": "฿",
    "MYR": "RM",
    "VND": "₫",
    "IDR": "Rp",
    "PHP": "₱",
    "MMK": "K",
}

SUPPORTED_CURRENCIES = sorted(CURRENCY_SYMBOLS)


def currency_symbol(code: str) -> str:
    return CURRENCY_SYMBOLS.get((code or "").upper(), DEFAULT_SYMBOL)


def format_currency(
    amount: Union[Decimal, float, int],
    code: str = "USD",
    show_symbol: bool = True,
    show_code: bool = False,
) -> str:
    """
    Format an amount for display, e.g. "$1,225.00" or "₹1,200.00 INR".

    Always two decimals with thousands grouping.
    """
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    number = f"{abs(value):,.2f}"
    sign = "-" if value < 0 else ""
    code = (code or "USD").upper()

    if show_symbol and show_code:
        return f"{sign}{currency_symbol(code)}{number} {code}"
    if show_symbol:
        return f"{sign}{currency_symbol(code)}{number}"
    if show_code:
        return f"{sign}{number} {code}"
    return f"{sign}{number}"
