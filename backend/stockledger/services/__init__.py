# Services module

from stockledger.services.audit_service import AuditContext, log_action
from stockledger.services.movement_journal import (
    BalanceDiscrepancy,
    MovementJournal,
    MovementLineInput,
)
from stockledger.services.quantity_store import QuantityStore
from stockledger.services.stock_count_service import (
    Adjustment,
    PostResult,
    StockCountService,
)

__all__ = [
    "AuditContext",
    "log_action",
    "BalanceDiscrepancy",
    "MovementJournal",
    "MovementLineInput",
    "QuantityStore",
    "Adjustment",
    "PostResult",
    "StockCountService",
]
