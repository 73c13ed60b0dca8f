from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# Every currency is treated as having two decimal places.
MINOR_UNITS = Decimal(100)


def to_remote_units(amount: Union[Decimal, int, str]) -> int:
    """Convert a decimal amount into the integer minor units Stripe expects."""
    minor = Decimal(amount) * MINOR_UNITS
    return int(minor.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_remote_units(units: int) -> Decimal:
    return (Decimal(units) / MINOR_UNITS).quantize(Decimal("0.01"))
