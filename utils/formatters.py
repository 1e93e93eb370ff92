"""
Presentation helpers for money values.

Note: rounding happens here and only here; services keep full precision.
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

CURRENCY_SYMBOLS = {
    "TRY": "₺",
    "USD": "$",
    "EUR": "€",
}


def round_money(amount):
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_json(amount):
    """Rounded float for JSON payloads."""
    return float(round_money(amount))


def format_currency(amount, currency):
    """
    Format an amount for display, e.g. ``₺1,234.50`` or ``-$3.33``.
    Unknown currencies fall back to their code as a prefix.
    """
    rounded = round_money(amount)
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{abs(rounded):,.2f}"
