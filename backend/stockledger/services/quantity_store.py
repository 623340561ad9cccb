"""Quantity store - the current balance per (item, location) pair.

The store is a cache of the movement journal kept in lockstep with it. It
does not commit and does not enforce non-negative balances; callers run it
inside a ``UnitOfWork`` and check their own invariants.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from stockledger.core.decimal_utils import ZERO, parse_quantity, quantize
from stockledger.db.unit_of_work import flush_or_raise
from stockledger.models.item import Item, ItemKind
from stockledger.models.stock import Stock

logger = logging.getLogger(__name__)


class QuantityStore:
    """Read and write access to ``Stock`` rows."""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, item_id: int, location_id: int, lock: bool = False) -> Optional[Stock]:
        query = self.db.query(Stock).filter(
            Stock.item_id == item_id,
            Stock.location_id == location_id,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def get_quantity(self, item_id: int, location_id: int, lock: bool = False) -> Decimal:
        """Current balance, zero when no row exists."""
        row = self._row(item_id, location_id, lock=lock)
        return quantize(row.qty) if row else quantize(ZERO)

    def get_quantities(
        self,
        location_id: int,
        item_ids: Optional[Iterable[int]] = None,
        lock: bool = False,
    ) -> Dict[int, Decimal]:
        """Balances at *location_id* keyed by item id.

        Items without a row are absent from the result; treat them as zero.
        With ``lock`` the existing rows are held ``FOR UPDATE`` until the
        surrounding transaction ends.
        """
        query = self.db.query(Stock).filter(Stock.location_id == location_id)
        if item_ids is not None:
            ids = list(item_ids)
            if not ids:
                return {}
            query = query.filter(Stock.item_id.in_(ids))
        if lock:
            query = query.with_for_update()
        return {row.item_id: quantize(row.qty) for row in query.all()}

    def set_quantity(self, item_id: int, location_id: int, new_qty: Any) -> Stock:
        """Upsert the balance for one pair."""
        qty = parse_quantity(new_qty)
        row = self._row(item_id, location_id)
        if row is None:
            row = Stock(item_id=item_id, location_id=location_id, qty=qty)
            self.db.add(row)
        else:
            row.qty = qty
        # Flush so a later read in the same transaction sees this row
        flush_or_raise(self.db)
        return row

    def apply_delta(self, item_id: int, location_id: int, delta: Decimal) -> Decimal:
        """Add *delta* to the balance and return the new quantity."""
        current = self.get_quantity(item_id, location_id, lock=True)
        new_qty = current + delta
        self.set_quantity(item_id, location_id, new_qty)
        return new_qty

    # ------------------------------------------------------------------
    # Reporting reads
    # ------------------------------------------------------------------
    def list_stocks(
        self,
        item_id: Optional[int] = None,
        location_id: Optional[int] = None,
        q: Optional[str] = None,
        kind: Optional[ItemKind] = None,
        page: int = 1,
        page_size: int = 500,
    ) -> Tuple[List[Stock], int]:
        """Stock rows joined to their item, ordered by SKU."""
        query = self.db.query(Stock).join(Item, Item.id == Stock.item_id)
        if item_id:
            query = query.filter(Stock.item_id == item_id)
        if location_id:
            query = query.filter(Stock.location_id == location_id)
        if q and q.strip():
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(Item.sku.ilike(pattern), Item.name.ilike(pattern)))
        if kind:
            query = query.filter(Item.kind == kind)

        total = query.count()
        rows = (
            query.order_by(Item.sku, Stock.location_id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return rows, total

    def summary_by_item(
        self,
        q: Optional[str] = None,
        kind: Optional[ItemKind] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Total balance per item across all locations.

        Items without any stock row are included with a zero total.
        """
        query = self.db.query(Item)
        if q and q.strip():
            pattern = f"%{q.strip()}%"
            query = query.filter(or_(Item.sku.ilike(pattern), Item.name.ilike(pattern)))
        if kind:
            query = query.filter(Item.kind == kind)

        total = query.count()
        items = query.order_by(Item.sku).offset((page - 1) * page_size).limit(page_size).all()
        if not items:
            return [], total

        totals = dict(
            self.db.query(Stock.item_id, func.sum(Stock.qty))
            .filter(Stock.item_id.in_([item.id for item in items]))
            .group_by(Stock.item_id)
            .all()
        )
        rows = [
            {
                "item_id": item.id,
                "sku": item.sku,
                "name": item.name,
                "unit": item.unit,
                "kind": item.kind,
                "total_qty": quantize(Decimal(str(totals.get(item.id) or 0))),
            }
            for item in items
        ]
        return rows, total
