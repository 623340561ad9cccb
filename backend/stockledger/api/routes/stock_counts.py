"""Stock count routes.

Reads need any authenticated user; creating, editing, posting and deleting
need the accountant role or higher.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from stockledger.api.deps import audit_context
from stockledger.core.config import settings
from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import CurrentUser, RequireAccountant
from stockledger.core.responses import clamp_page, paginated_response
from stockledger.db.session import DbSession
from stockledger.models.stock_count import StockCountStatus
from stockledger.schemas.movement import MovementResponse
from stockledger.schemas.stock_count import (
    AdjustmentResponse,
    StockCountCreate,
    StockCountDetailLine,
    StockCountDetailResponse,
    StockCountLineResponse,
    StockCountLineUpdate,
    StockCountListResponse,
    StockCountPostRequest,
    StockCountPostResponse,
    StockCountResponse,
    StockCountWithLinesResponse,
)
from stockledger.services.stock_count_service import StockCountService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=StockCountListResponse)
@limiter.limit(settings.rate_limit_read)
def list_stock_counts(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    location_id: Optional[int] = None,
    status_filter: Optional[StockCountStatus] = Query(None, alias="status"),
    q: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
):
    """List stock counts, newest first."""
    page, page_size = clamp_page(page, page_size)
    rows, total = StockCountService(db).list_counts(
        location_id=location_id,
        status=status_filter,
        q=q,
        page=page,
        page_size=page_size,
    )
    items = [StockCountResponse.model_validate(row) for row in rows]
    return paginated_response(items, total, page, page_size)


@router.post("", response_model=StockCountWithLinesResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.rate_limit_write)
def create_stock_count(
    request: Request,
    payload: StockCountCreate,
    db: DbSession,
    current_user: RequireAccountant,
):
    """Create a draft count with a line per catalog item."""
    stock_count = StockCountService(db).create_count(
        location_id=payload.location_id,
        reference_code=payload.reference_code,
        note=payload.note,
        include_zero_balances=payload.include_zero_balances,
        ctx=audit_context(request, current_user),
    )
    return StockCountWithLinesResponse.model_validate(stock_count)


@router.get("/{stock_count_id}", response_model=StockCountDetailResponse)
@limiter.limit(settings.rate_limit_read)
def get_stock_count(request: Request, stock_count_id: int, db: DbSession, current_user: CurrentUser):
    """Stock count with book quantity and difference per line."""
    detail = StockCountService(db).get_detail(stock_count_id)
    return StockCountDetailResponse(
        stock_count=StockCountResponse.model_validate(detail["stock_count"]),
        lines=[StockCountDetailLine(**line) for line in detail["lines"]],
        total_lines=detail["total_lines"],
        variance_count=detail["variance_count"],
    )


@router.put("/lines/{line_id}", response_model=StockCountLineResponse)
@limiter.limit(settings.rate_limit_write)
def update_stock_count_line(
    request: Request,
    line_id: int,
    payload: StockCountLineUpdate,
    db: DbSession,
    current_user: RequireAccountant,
):
    """Set the counted quantity of one line."""
    line = StockCountService(db).update_line(
        line_id,
        payload.counted_qty,
        ctx=audit_context(request, current_user),
    )
    return StockCountLineResponse.model_validate(line)


@router.post("/{stock_count_id}/post", response_model=StockCountPostResponse)
@limiter.limit(settings.rate_limit_write)
def post_stock_count(
    request: Request,
    stock_count_id: int,
    db: DbSession,
    current_user: RequireAccountant,
    payload: Optional[StockCountPostRequest] = None,
):
    """
    Post a stock count.

    This will:
    1. Recompute every difference against the live balance
    2. Create one ADJUST movement for the non-zero differences
    3. Set the balances to the counted quantities
    4. Mark the count as posted
    """
    payload = payload or StockCountPostRequest()
    result = StockCountService(db).post_count(
        stock_count_id,
        movement_reference_code=payload.movement_reference_code,
        movement_note=payload.movement_note,
        ctx=audit_context(request, current_user),
    )
    return StockCountPostResponse(
        stock_count=StockCountResponse.model_validate(result.stock_count),
        movement=MovementResponse.model_validate(result.movement) if result.movement else None,
        adjustments=[AdjustmentResponse.model_validate(adj) for adj in result.adjustments],
    )


@router.delete("/{stock_count_id}")
@limiter.limit(settings.rate_limit_write)
def delete_stock_count(
    request: Request,
    stock_count_id: int,
    db: DbSession,
    current_user: RequireAccountant,
):
    """Delete a draft stock count."""
    StockCountService(db).delete_count(stock_count_id, ctx=audit_context(request, current_user))
    return {"deleted": True, "id": stock_count_id}
