"""Movement journal schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from stockledger.models.stock import MovementType
from stockledger.schemas.common import Quantity


class MovementLineResponse(BaseModel):
    """Movement line response schema."""

    id: int
    item_id: int
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    qty: Quantity
    note: Optional[str] = None

    model_config = {"from_attributes": True}


class MovementResponse(BaseModel):
    """Movement response schema."""

    id: int
    type: MovementType
    reference_code: str
    note: Optional[str] = None
    posted: bool
    occurred_at: datetime
    created_by: Optional[int] = None
    created_at: datetime
    lines: List[MovementLineResponse] = []

    model_config = {"from_attributes": True}


class MovementListResponse(BaseModel):
    items: List[MovementResponse]
    total: int
    page: int
    page_size: int
    has_more: bool
