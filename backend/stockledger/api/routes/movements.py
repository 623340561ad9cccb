"""Movement journal routes (read-only)."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from stockledger.core.config import settings
from stockledger.core.rate_limit import limiter
from stockledger.core.rbac import CurrentUser
from stockledger.core.responses import clamp_page, paginated_response
from stockledger.db.session import DbSession
from stockledger.models.stock import MovementType
from stockledger.schemas.movement import MovementListResponse, MovementResponse
from stockledger.services.movement_journal import MovementJournal

router = APIRouter()


@router.get("", response_model=MovementListResponse)
@limiter.limit(settings.rate_limit_read)
def list_movements(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    movement_type: Optional[MovementType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1),
):
    """List movements, newest first."""
    page, page_size = clamp_page(page, page_size)
    rows, total = MovementJournal(db).list_movements(movement_type, page=page, page_size=page_size)
    items = [MovementResponse.model_validate(row) for row in rows]
    return paginated_response(items, total, page, page_size)


@router.get("/{movement_id}", response_model=MovementResponse)
@limiter.limit(settings.rate_limit_read)
def get_movement(request: Request, movement_id: int, db: DbSession, current_user: CurrentUser):
    """Get one movement with its lines."""
    return MovementResponse.model_validate(MovementJournal(db).get_movement(movement_id))
