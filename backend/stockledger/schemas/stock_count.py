"""Stock count schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from stockledger.models.stock_count import StockCountStatus
from stockledger.schemas.common import Quantity, QuantityInput
from stockledger.schemas.movement import MovementResponse


class StockCountCreate(BaseModel):
    """Stock count creation schema."""

    location_id: int
    reference_code: Optional[str] = Field(default=None, max_length=64)
    note: Optional[str] = Field(default=None, max_length=1000)
    include_zero_balances: bool = False


class StockCountLineUpdate(BaseModel):
    """Counted quantity for one line; strings and numbers are accepted."""

    counted_qty: QuantityInput


class StockCountPostRequest(BaseModel):
    movement_reference_code: Optional[str] = Field(default=None, max_length=64)
    movement_note: Optional[str] = Field(default=None, max_length=500)


class StockCountLineResponse(BaseModel):
    """Stock count line response schema."""

    id: int
    stock_count_id: int
    item_id: int
    counted_qty: Quantity

    model_config = {"from_attributes": True}


class StockCountResponse(BaseModel):
    """Stock count response schema."""

    id: int
    reference_code: str
    status: StockCountStatus
    location_id: int
    note: Optional[str] = None
    created_by: Optional[int] = None
    posted_at: Optional[datetime] = None
    posted_by: Optional[int] = None
    movement_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockCountWithLinesResponse(StockCountResponse):
    lines: List[StockCountLineResponse] = []


class StockCountListResponse(BaseModel):
    items: List[StockCountResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class StockCountDetailLine(BaseModel):
    """A line with its book quantity and ``diff = counted - book``."""

    line_id: int
    item_id: int
    sku: str
    name: str
    unit: Optional[str] = None
    counted_qty: Quantity
    book_qty: Quantity
    diff: Quantity


class StockCountDetailResponse(BaseModel):
    stock_count: StockCountResponse
    lines: List[StockCountDetailLine]
    total_lines: int
    variance_count: int


class AdjustmentResponse(BaseModel):
    item_id: int
    book_qty: Quantity
    counted_qty: Quantity
    diff: Quantity

    model_config = {"from_attributes": True}


class StockCountPostResponse(BaseModel):
    """Response after posting a stock count."""

    stock_count: StockCountResponse
    movement: Optional[MovementResponse] = None
    adjustments: List[AdjustmentResponse]

    model_config = {"from_attributes": True}
