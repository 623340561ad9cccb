"""Error taxonomy for the stock ledger.

Every error the ledger raises derives from ``StockLedgerError``. Services
raise them at the boundary of each operation and never recover them
internally; the API layer maps ``status_code`` onto the HTTP response.
"""

from decimal import Decimal
from typing import Any, Optional


class StockLedgerError(Exception):
    """Base class for all ledger errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(StockLedgerError):
    """A referenced record does not exist."""

    status_code = 404
    entity = "Record"

    def __init__(self, entity_id: Any, message: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message or f"{self.entity} {entity_id} not found")


class LocationNotFound(NotFound):
    entity = "Location"


class ItemNotFound(NotFound):
    entity = "Item"


class StockCountNotFound(NotFound):
    entity = "StockCount"


class StockCountLineNotFound(NotFound):
    entity = "StockCountLine"


class MovementNotFound(NotFound):
    entity = "Movement"


class AlreadyPosted(StockLedgerError):
    """Raised when a sealed stock count is re-posted or modified."""

    status_code = 409

    def __init__(self, stock_count_id: Any, reference_code: Optional[str] = None):
        self.stock_count_id = stock_count_id
        self.reference_code = reference_code
        label = reference_code or stock_count_id
        super().__init__(f"StockCount {label} already posted")


class DuplicateReference(StockLedgerError):
    """Raised when a Movement or StockCount reference code already exists."""

    status_code = 409

    def __init__(self, reference_code: Optional[str] = None, entity: str = ""):
        self.reference_code = reference_code
        self.entity = entity
        if reference_code:
            message = f"Reference code '{reference_code}' already exists"
        else:
            message = "Reference code already exists"
        if entity:
            message = f"{message} ({entity})"
        super().__init__(message)


class InvalidQuantity(StockLedgerError):
    """Raised when a quantity cannot be parsed into an exact decimal."""

    status_code = 422

    def __init__(self, value: Any, reason: str = "not a valid decimal quantity"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid quantity {value!r}: {reason}")


class InvalidMovement(StockLedgerError):
    """Raised when a journal line does not fit its movement type."""

    status_code = 422


class InsufficientStock(StockLedgerError):
    """Raised when an outbound line would drive a balance below zero."""

    status_code = 409

    def __init__(self, item_id: int, location_id: int, available: Decimal, needed: Decimal):
        self.item_id = item_id
        self.location_id = location_id
        self.available = available
        self.needed = needed
        super().__init__(
            f"Insufficient stock for item {item_id} at location {location_id}: "
            f"need {needed}, have {available}"
        )


class TransactionFailure(StockLedgerError):
    """The backing store could not commit the unit of work."""

    status_code = 503
