"""Stock balance schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from stockledger.models.item import ItemKind
from stockledger.schemas.common import Quantity


class StockResponse(BaseModel):
    """One balance row with its item's identity."""

    id: int
    item_id: int
    sku: str
    name: str
    unit: Optional[str] = None
    location_id: int
    qty: Quantity
    updated_at: Optional[datetime] = None


class StockListResponse(BaseModel):
    items: List[StockResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class StockSummaryRow(BaseModel):
    item_id: int
    sku: str
    name: str
    unit: Optional[str] = None
    kind: ItemKind
    total_qty: Quantity


class StockSummaryResponse(BaseModel):
    items: List[StockSummaryRow]
    total: int
    page: int
    page_size: int
    has_more: bool


class BalanceDiscrepancyResponse(BaseModel):
    """A cached balance that disagrees with the movement journal."""

    item_id: int
    location_id: int
    cached_qty: Quantity
    journal_qty: Quantity
    difference: Quantity

    model_config = {"from_attributes": True}


class BalanceAuditResponse(BaseModel):
    consistent: bool
    discrepancies: List[BalanceDiscrepancyResponse]
