"""
Inventory Helper Functions

Quantity handling shared by the planning and inventory services.
Every stored or planned quantity is a Decimal with four places.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")
QUANTITY_PLACES = Decimal("0.0001")


def to_quantity(value: Any) -> Decimal:
    """
    Normalise a quantity to a four-place Decimal.

    Floats go through str() so 0.1 stays 0.1; None counts as zero
    (a missing stock row is zero stock).
    """
    if value is None:
        return ZERO.quantize(QUANTITY_PLACES)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def positive_part(value: Decimal) -> Decimal:
    """Clamp negatives to zero, for reporting only."""
    return value if value > ZERO else to_quantity(ZERO)
