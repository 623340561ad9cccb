"""SQLAlchemy models."""

from stockledger.models.item import Item, ItemKind
from stockledger.models.location import Location
from stockledger.models.stock import Movement, MovementLine, MovementType, Stock
from stockledger.models.stock_count import StockCount, StockCountLine, StockCountStatus
from stockledger.models.audit_log import AuditLog

__all__ = [
    "AuditLog",
    "Item",
    "ItemKind",
    "Location",
    "Movement",
    "MovementLine",
    "MovementType",
    "Stock",
    "StockCount",
    "StockCountLine",
    "StockCountStatus",
]
