"""Money arithmetic for settlement.

Amounts travel as ``Decimal`` with two fractional digits. Aggregates persist
them as floats, so every value read back from storage goes through
``to_money`` before any arithmetic. Carrier quotes use integer minor units.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

VALID_CURRENCIES = frozenset(
    {
        "USD",
        "EUR",
        "GBP",
        "JPY",
        "CAD",
        "AUD",
        "CHF",
        "CNY",
        "INR",
        "MXN",
        "BRL",
        "KRW",
        "SGD",
        "HKD",
        "NOK",
        "SEK",
        "DKK",
        "NZD",
        "ZAR",
        "TWD",
        "NGN",
        "GHS",
        "KES",
    }
)


def to_money(value) -> Decimal:
    """Round half-up to cents. Floats are converted through ``str`` to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def floor_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def from_minor(minor: int) -> Decimal:
    return (Decimal(int(minor)) / 100).quantize(CENT)


def to_minor(amount) -> int:
    return int((to_money(amount) * 100).to_integral_value())


def format_money(amount, currency: str) -> str:
    return f"{currency} {to_money(amount):,.2f}"
