"""Stock balance routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from stockledger.api.deps import audit_context
from stockledger.core.config import settings
from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import CurrentUser, RequireAccountant
from stockledger.core.responses import clamp_page, paginated_response
from stockledger.db.session import DbSession
from stockledger.db.unit_of_work import UnitOfWork
from stockledger.models.item import ItemKind
from stockledger.schemas.stock import (
    BalanceAuditResponse,
    BalanceDiscrepancyResponse,
    StockListResponse,
    StockResponse,
    StockSummaryResponse,
    StockSummaryRow,
)
from stockledger.services.audit_service import log_action
from stockledger.services.movement_journal import MovementJournal
from stockledger.services.quantity_store import QuantityStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=StockListResponse)
@limiter.limit(settings.rate_limit_read)
def list_stocks(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    item_id: Optional[int] = None,
    location_id: Optional[int] = None,
    q: Optional[str] = None,
    kind: Optional[ItemKind] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.max_page_size, ge=1),
):
    """Balances per item and location."""
    page, page_size = clamp_page(page, page_size)
    rows, total = QuantityStore(db).list_stocks(
        item_id=item_id,
        location_id=location_id,
        q=q,
        kind=kind,
        page=page,
        page_size=page_size,
    )
    items = [
        StockResponse(
            id=row.id,
            item_id=row.item_id,
            sku=row.item.sku,
            name=row.item.name,
            unit=row.item.unit,
            location_id=row.location_id,
            qty=row.qty,
            updated_at=row.updated_at,
        )
        for row in rows
    ]
    return paginated_response(items, total, page, page_size)


@router.get("/summary-by-item", response_model=StockSummaryResponse)
@limiter.limit(settings.rate_limit_read)
def stock_summary_by_item(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    q: Optional[str] = None,
    kind: Optional[ItemKind] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1),
):
    """Total balance per item across locations, zero for items never stocked."""
    page, page_size = clamp_page(page, page_size)
    rows, total = QuantityStore(db).summary_by_item(q=q, kind=kind, page=page, page_size=page_size)
    items = [StockSummaryRow(**row) for row in rows]
    return paginated_response(items, total, page, page_size)


@router.get("/audit", response_model=BalanceAuditResponse)
@limiter.limit(settings.rate_limit_read)
def audit_stock_balances(request: Request, db: DbSession, current_user: CurrentUser):
    """Compare cached balances with the movement journal."""
    discrepancies = MovementJournal(db).audit_balances()
    return BalanceAuditResponse(
        consistent=not discrepancies,
        discrepancies=[BalanceDiscrepancyResponse.model_validate(d) for d in discrepancies],
    )


@router.post("/rebuild", response_model=BalanceAuditResponse)
@limiter.limit(settings.rate_limit_write)
def rebuild_stock_balances(request: Request, db: DbSession, current_user: RequireAccountant):
    """Rewrite drifted balances from the movement journal."""
    with UnitOfWork(db, "rebuild stock balances"):
        fixed = MovementJournal(db).rebuild_balances()
        if fixed:
            log_action(
                db,
                "STOCK_REBUILD",
                "Stock",
                ctx=audit_context(request, current_user),
                details={"corrected": len(fixed)},
            )
    return BalanceAuditResponse(
        consistent=not fixed,
        discrepancies=[BalanceDiscrepancyResponse.model_validate(d) for d in fixed],
    )
