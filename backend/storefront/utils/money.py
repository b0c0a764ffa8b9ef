from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")

# currencies the gateway expects in whole units (no minor unit)
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)


def to_decimal(amount: Union[Decimal, int, float, str]) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() first so binary floats like 19.99 keep their printed value
    return Decimal(str(amount))


def round_money(amount: Union[Decimal, int, float, str]) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def minor_unit_factor(currency: str) -> int:
    return 1 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 100


def to_minor_units(amount: Union[Decimal, int, float, str], currency: str) -> int:
    """Convert a decimal price to the integer amount the gateway charges (19.99 gbp -> 1999)."""
    scaled = to_decimal(amount) * minor_unit_factor(currency)
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))
