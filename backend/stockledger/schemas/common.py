"""Shared schema types."""

from decimal import Decimal
from typing import Annotated, Union

from pydantic import PlainSerializer

from stockledger.core.decimal_utils import format_quantity

# Quantities leave the API as plain decimal strings ("8", "2.5"), never floats
Quantity = Annotated[
    Decimal,
    PlainSerializer(format_quantity, return_type=str, when_used="json"),
]

# Quantities enter loosely typed and are parsed by the service layer
QuantityInput = Union[str, int, float]
