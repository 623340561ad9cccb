"""Exact fixed-point helpers for stock quantities.

Quantities arrive loosely typed (JSON numbers, form strings, spreadsheet
cells) and are parsed here, once, into ``Decimal`` at the persisted scale.
Nothing in the ledger does arithmetic on floats.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from stockledger.core.config import settings
from stockledger.core.exceptions import InvalidQuantity

ZERO = Decimal("0")

# Numeric(18, scale)
MAX_DIGITS = 18

_GROUPING_CHARS = (" ", "_", "\u00a0", "\u202f")


def _step(scale: int) -> Decimal:
    return Decimal(1).scaleb(-scale)


def _parse_text(raw: str) -> Decimal:
    text = raw.strip()
    for ch in _GROUPING_CHARS:
        text = text.replace(ch, "")
    if not text:
        raise InvalidQuantity(raw, "empty value")

    if "," in text:
        if "." in text:
            raise InvalidQuantity(raw, "ambiguous decimal separator")
        if text.count(",") > 1:
            raise InvalidQuantity(raw, "ambiguous decimal separator")
        text = text.replace(",", ".")

    try:
        return Decimal(text)
    except InvalidOperation:
        raise InvalidQuantity(raw) from None


def parse_quantity(
    value: Any,
    allow_negative: bool = True,
    scale: Optional[int] = None,
) -> Decimal:
    """Parse *value* into a ``Decimal`` with at most ``scale`` fractional digits.

    Accepts ``Decimal``, ``int``, ``float`` (through its shortest ``str``
    form) and strings. A lone comma is read as the decimal separator
    (``"2,5"`` is 2.5); spaces and underscores are dropped as digit
    grouping. Mixing ``,`` and ``.`` is rejected rather than guessed.

    Raises:
        InvalidQuantity: for ``None``, booleans, non-finite values, values
            with more fractional digits than the scale, values out of
            range, and (when *allow_negative* is False) negatives.
    """
    if scale is None:
        scale = settings.quantity_scale

    if value is None or isinstance(value, bool):
        raise InvalidQuantity(value)

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        number = _parse_text(value)
    else:
        raise InvalidQuantity(value, f"unsupported type {type(value).__name__}")

    if not number.is_finite():
        raise InvalidQuantity(value, "not a finite number")

    try:
        fitted = number.quantize(_step(scale))
    except InvalidOperation:
        raise InvalidQuantity(value, "out of range") from None
    if fitted != number:
        raise InvalidQuantity(value, f"more than {scale} decimal places")
    if abs(fitted) >= Decimal(10) ** (MAX_DIGITS - scale):
        raise InvalidQuantity(value, "out of range")

    if not allow_negative and fitted < 0:
        raise InvalidQuantity(value, "must not be negative")

    # -0 and 0 compare equal but render differently
    if fitted == 0:
        return quantize(ZERO, scale)
    return fitted


def quantize(value: Decimal, scale: Optional[int] = None) -> Decimal:
    """Round an already-exact decimal to the persisted scale."""
    if scale is None:
        scale = settings.quantity_scale
    return value.quantize(_step(scale), rounding=ROUND_HALF_UP)


def is_zero(value: Decimal) -> bool:
    return value == ZERO


def format_quantity(value: Optional[Decimal]) -> str:
    """Render a quantity as a plain string: no exponent, no trailing zeros."""
    if value is None or value == 0:
        return "0"
    return format(value.normalize(), "f")


def signed_line_quantity(
    qty: Decimal,
    from_location_id: Optional[int],
    to_location_id: Optional[int],
    location_id: int,
) -> Decimal:
    """Effect of one movement line on the balance at *location_id*."""
    if to_location_id == location_id:
        return qty
    if from_location_id == location_id:
        return -qty
    return ZERO
