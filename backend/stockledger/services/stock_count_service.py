"""Stock count service - creation, counting, variance and posting of physical counts.

A count moves ``draft`` -> ``posted`` exactly once. Book quantities are
never stored on the lines; they are read from the live quantity store
whenever a draft is displayed or posted, so a retried post recomputes its
differences instead of applying stale ones.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.decimal_utils import (
    ZERO,
    format_quantity,
    is_zero,
    parse_quantity,
    quantize,
    signed_line_quantity,
)
from stockledger.core.exceptions import (
    AlreadyPosted,
    DuplicateReference,
    LocationNotFound,
    StockCountLineNotFound,
    StockCountNotFound,
)
from stockledger.db.unit_of_work import UnitOfWork
from stockledger.models.item import Item
from stockledger.models.location import Location
from stockledger.models.stock import Movement, MovementLine, MovementType
from stockledger.models.stock_count import StockCount, StockCountLine, StockCountStatus
from stockledger.services.audit_service import AuditContext, log_action
from stockledger.services.movement_journal import MovementJournal, MovementLineInput
from stockledger.services.quantity_store import QuantityStore

logger = logging.getLogger(__name__)

# Number of per-item differences copied into the post audit entry
AUDIT_DIFF_PREVIEW = 20


def default_count_reference(today: Optional[date] = None) -> str:
    """Reference for a count created without one, e.g. ``KK-2025-12-16``."""
    today = today or datetime.now(timezone.utc).date()
    return f"{settings.count_reference_prefix}-{today.isoformat()}"


def default_adjustment_reference(stock_count: StockCount) -> str:
    return f"{settings.adjustment_reference_prefix}-{stock_count.reference_code}"


@dataclass
class Adjustment:
    """A reconciling difference applied while posting."""

    item_id: int
    book_qty: Decimal
    counted_qty: Decimal
    diff: Decimal

    def as_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "book_qty": format_quantity(self.book_qty),
            "counted_qty": format_quantity(self.counted_qty),
            "diff": format_quantity(self.diff),
        }


@dataclass
class PostResult:
    stock_count: StockCount
    movement: Optional[Movement]
    adjustments: List[Adjustment]


class StockCountService:
    """Centralised service for stock count operations."""

    def __init__(self, db: Session):
        self.db = db
        self.store = QuantityStore(db)
        self.journal = MovementJournal(db, self.store)

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    def get_count(self, stock_count_id: int, lock: bool = False) -> StockCount:
        query = self.db.query(StockCount).filter(StockCount.id == stock_count_id)
        if lock:
            query = query.with_for_update()
        stock_count = query.first()
        if stock_count is None:
            raise StockCountNotFound(stock_count_id)
        return stock_count

    def _get_location(self, location_id: int, lock: bool = False) -> Location:
        query = self.db.query(Location).filter(Location.id == location_id)
        if lock:
            query = query.with_for_update()
        location = query.first()
        if location is None:
            raise LocationNotFound(location_id)
        return location

    def _reference_exists(self, reference_code: str) -> bool:
        return (
            self.db.query(StockCount.id)
            .filter(StockCount.reference_code == reference_code)
            .first()
            is not None
        )

    def _ordered_lines(self, stock_count_id: int) -> List[StockCountLine]:
        return (
            self.db.query(StockCountLine)
            .join(Item, Item.id == StockCountLine.item_id)
            .filter(StockCountLine.stock_count_id == stock_count_id)
            .order_by(Item.sku)
            .all()
        )

    # ------------------------------------------------------------------
    # list_counts
    # ------------------------------------------------------------------
    def list_counts(
        self,
        location_id: Optional[int] = None,
        status: Optional[StockCountStatus] = None,
        q: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[StockCount], int]:
        """Counts newest first, optionally filtered; returns (rows, total)."""
        query = self.db.query(StockCount)
        if location_id:
            query = query.filter(StockCount.location_id == location_id)
        if status:
            query = query.filter(StockCount.status == StockCountStatus(status))
        if q and q.strip():
            pattern = f"%{q.strip()}%"
            query = query.filter(
                or_(StockCount.reference_code.ilike(pattern), StockCount.note.ilike(pattern))
            )

        total = query.count()
        rows = (
            query.order_by(StockCount.created_at.desc(), StockCount.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return rows, total

    # ------------------------------------------------------------------
    # create_count
    # ------------------------------------------------------------------
    def create_count(
        self,
        location_id: int,
        reference_code: Optional[str] = None,
        note: Optional[str] = None,
        include_zero_balances: bool = False,
        ctx: Optional[AuditContext] = None,
        today: Optional[date] = None,
    ) -> StockCount:
        """Create a draft count with one line per catalog item.

        Every line starts at ``counted_qty = 0``. Items whose balance at
        the location is exactly zero are skipped unless
        *include_zero_balances*.

        Raises:
            LocationNotFound: If the location does not exist.
            DuplicateReference: If the (given or generated) reference is taken.
        """
        with UnitOfWork(self.db, "create stock count") as uow:
            self._get_location(location_id)

            items = self.db.query(Item).order_by(Item.sku).all()
            balances = self.store.get_quantities(location_id)

            item_ids = [
                item.id
                for item in items
                if include_zero_balances or not is_zero(balances.get(item.id, ZERO))
            ]

            reference = (reference_code or "").strip() or default_count_reference(today)
            if self._reference_exists(reference):
                logger.warning("Stock count reference collision: %s", reference)
                raise DuplicateReference(reference, "StockCount")

            stock_count = StockCount(
                reference_code=reference,
                note=note,
                status=StockCountStatus.DRAFT,
                location_id=location_id,
                created_by=ctx.user_id if ctx else None,
                lines=[
                    StockCountLine(item_id=item_id, counted_qty=quantize(ZERO))
                    for item_id in item_ids
                ],
            )
            self.db.add(stock_count)
            uow.flush()

            log_action(
                self.db,
                "STOCKCOUNT_CREATE",
                "StockCount",
                stock_count.id,
                ctx=ctx,
                after={
                    "reference_code": reference,
                    "status": StockCountStatus.DRAFT.value,
                    "location_id": location_id,
                    "include_zero_balances": include_zero_balances,
                    "line_count": len(item_ids),
                    "note": note,
                },
            )

        logger.info(
            "Stock count created: ID=%s, ref=%s, location=%s, lines=%s",
            stock_count.id,
            reference,
            location_id,
            len(item_ids),
        )
        return stock_count

    # ------------------------------------------------------------------
    # get_detail
    # ------------------------------------------------------------------
    def _posted_diffs(self, stock_count: StockCount) -> Dict[int, Decimal]:
        """Signed per-item differences recorded by the count's ADJUST movement."""
        diffs: Dict[int, Decimal] = {}
        if stock_count.movement_id is None:
            return diffs
        movement_lines = (
            self.db.query(MovementLine)
            .filter(MovementLine.movement_id == stock_count.movement_id)
            .all()
        )
        for line in movement_lines:
            signed = signed_line_quantity(
                quantize(line.qty),
                line.from_location_id,
                line.to_location_id,
                stock_count.location_id,
            )
            diffs[line.item_id] = diffs.get(line.item_id, ZERO) + signed
        return diffs

    def get_detail(self, stock_count_id: int) -> Dict[str, Any]:
        """Return the count with ``book_qty`` and ``diff`` for every line.

        Draft counts read the live balance at call time. Posted counts show
        the balance as it was at posting, rebuilt from their ADJUST movement,
        since the live balance has since been overwritten by the count.
        """
        stock_count = self.get_count(stock_count_id)
        lines = self._ordered_lines(stock_count.id)
        posted = stock_count.status == StockCountStatus.POSTED

        if posted:
            posted_diffs = self._posted_diffs(stock_count)
        else:
            balances = self.store.get_quantities(
                stock_count.location_id, [line.item_id for line in lines]
            )

        lines_data: List[Dict[str, Any]] = []
        variance_count = 0
        for line in lines:
            counted = quantize(line.counted_qty)
            if posted:
                diff = posted_diffs.get(line.item_id, quantize(ZERO))
                book = counted - diff
            else:
                book = balances.get(line.item_id, quantize(ZERO))
                diff = counted - book
            if not is_zero(diff):
                variance_count += 1

            lines_data.append(
                {
                    "line_id": line.id,
                    "item_id": line.item_id,
                    "sku": line.item.sku,
                    "name": line.item.name,
                    "unit": line.item.unit,
                    "counted_qty": counted,
                    "book_qty": book,
                    "diff": diff,
                }
            )

        return {
            "stock_count": stock_count,
            "lines": lines_data,
            "total_lines": len(lines_data),
            "variance_count": variance_count,
        }

    # ------------------------------------------------------------------
    # update_line
    # ------------------------------------------------------------------
    def update_line(
        self,
        line_id: int,
        counted_qty: Any,
        ctx: Optional[AuditContext] = None,
    ) -> StockCountLine:
        """Overwrite the counted quantity of one line of a draft count.

        Raises:
            InvalidQuantity: Unparseable value, or negative while
                ``allow_negative_counted_qty`` is off.
            StockCountLineNotFound: If the line does not exist.
            AlreadyPosted: If the owning count is posted.
        """
        qty = parse_quantity(counted_qty, allow_negative=settings.allow_negative_counted_qty)

        with UnitOfWork(self.db, "update stock count line"):
            line = self.db.get(StockCountLine, line_id)
            if line is None:
                raise StockCountLineNotFound(line_id)

            # Lock the count so the edit cannot interleave with a post
            stock_count = self.get_count(line.stock_count_id, lock=True)
            if stock_count.status == StockCountStatus.POSTED:
                logger.warning("Rejected line edit on posted count %s", stock_count.id)
                raise AlreadyPosted(stock_count.id, stock_count.reference_code)

            before = quantize(line.counted_qty)
            line.counted_qty = qty

            log_action(
                self.db,
                "STOCKCOUNT_UPDATE_LINE",
                "StockCountLine",
                line.id,
                ctx=ctx,
                before={
                    "stock_count_id": stock_count.id,
                    "reference_code": stock_count.reference_code,
                    "item_id": line.item_id,
                    "counted_qty": format_quantity(before),
                },
                after={
                    "stock_count_id": stock_count.id,
                    "reference_code": stock_count.reference_code,
                    "item_id": line.item_id,
                    "counted_qty": format_quantity(qty),
                },
            )

        logger.info("Stock count line updated: ID=%s, counted=%s", line_id, qty)
        return line

    # ------------------------------------------------------------------
    # post_count
    # ------------------------------------------------------------------
    def post_count(
        self,
        stock_count_id: int,
        movement_reference_code: Optional[str] = None,
        movement_note: Optional[str] = None,
        ctx: Optional[AuditContext] = None,
    ) -> PostResult:
        """Post a count: fold its differences into the ledger and seal it.

        Steps, all in one unit of work:
        1. Lock the count and fail if it is missing or already posted.
        2. Lock the location and its stock rows, then read the live book
           quantity for every line and compute ``counted - book``.
        3. Without any non-zero difference, just mark the count posted.
        4. Otherwise append one ADJUST movement with an inbound line per
           surplus and an outbound line per shortage (magnitude
           ``abs(diff)``) and set each balance to ``book + diff``.
        5. Mark the count posted.

        Raises:
            StockCountNotFound: If the count does not exist.
            AlreadyPosted: If the count is already posted.
            DuplicateReference: If the adjustment reference is taken.
            TransactionFailure: If the store cannot commit.
        """
        with UnitOfWork(self.db, "post stock count"):
            stock_count = self.get_count(stock_count_id, lock=True)
            if stock_count.status == StockCountStatus.POSTED:
                logger.warning("Rejected re-post of stock count %s", stock_count.id)
                raise AlreadyPosted(stock_count.id, stock_count.reference_code)

            location_id = stock_count.location_id
            # Serializes posts against the same location; other locations run in parallel
            self._get_location(location_id, lock=True)

            lines = sorted(stock_count.lines, key=lambda line: line.item_id)
            balances = self.store.get_quantities(
                location_id, [line.item_id for line in lines], lock=True
            )

            adjustments: List[Adjustment] = []
            for line in lines:
                book = balances.get(line.item_id, quantize(ZERO))
                counted = quantize(line.counted_qty)
                diff = counted - book
                if not is_zero(diff):
                    adjustments.append(
                        Adjustment(item_id=line.item_id, book_qty=book, counted_qty=counted, diff=diff)
                    )

            movement = None
            if adjustments:
                reference = (movement_reference_code or "").strip() or default_adjustment_reference(
                    stock_count
                )
                note = movement_note or f"Stock adjustment from count {stock_count.reference_code}"
                movement = self.journal.append_movement(
                    MovementType.ADJUST,
                    reference,
                    note,
                    [
                        MovementLineInput(
                            item_id=adj.item_id,
                            qty=abs(adj.diff),
                            from_location_id=None if adj.diff > 0 else location_id,
                            to_location_id=location_id if adj.diff > 0 else None,
                            note=(
                                f"Count difference (book {format_quantity(adj.book_qty)}"
                                f" / counted {format_quantity(adj.counted_qty)})"
                            ),
                        )
                        for adj in adjustments
                    ],
                    created_by=ctx.user_id if ctx else None,
                )

                for adj in adjustments:
                    # Apply against the in-transaction view, not the initial snapshot
                    current = balances.get(adj.item_id, quantize(ZERO))
                    new_qty = current + adj.diff
                    self.store.set_quantity(adj.item_id, location_id, new_qty)
                    balances[adj.item_id] = new_qty

                stock_count.movement_id = movement.id

            stock_count.status = StockCountStatus.POSTED
            stock_count.posted_at = datetime.now(timezone.utc)
            stock_count.posted_by = ctx.user_id if ctx else None

            log_action(
                self.db,
                "STOCKCOUNT_POST",
                "StockCount",
                stock_count.id,
                ctx=ctx,
                before={"status": StockCountStatus.DRAFT.value},
                after={
                    "status": StockCountStatus.POSTED.value,
                    "movement_id": movement.id if movement else None,
                    "movement_reference_code": movement.reference_code if movement else None,
                },
                details={
                    "reference_code": stock_count.reference_code,
                    "location_id": location_id,
                    "movement_created": movement is not None,
                    "diff_count": len(adjustments),
                    "diff_preview": [adj.as_dict() for adj in adjustments[:AUDIT_DIFF_PREVIEW]],
                },
            )

        logger.info(
            "Stock count posted: ID=%s, location=%s, adjustments=%s, movement=%s",
            stock_count.id,
            location_id,
            len(adjustments),
            movement.id if movement else None,
        )
        return PostResult(stock_count=stock_count, movement=movement, adjustments=adjustments)

    # ------------------------------------------------------------------
    # delete_count
    # ------------------------------------------------------------------
    def delete_count(self, stock_count_id: int, ctx: Optional[AuditContext] = None) -> None:
        """Delete a draft count and its lines. Posted counts are permanent."""
        with UnitOfWork(self.db, "delete stock count"):
            stock_count = self.get_count(stock_count_id, lock=True)
            if stock_count.status == StockCountStatus.POSTED:
                raise AlreadyPosted(stock_count.id, stock_count.reference_code)

            snapshot = {
                "reference_code": stock_count.reference_code,
                "status": stock_count.status.value,
                "location_id": stock_count.location_id,
                "line_count": len(stock_count.lines),
            }
            self.db.delete(stock_count)
            log_action(
                self.db,
                "STOCKCOUNT_DELETE",
                "StockCount",
                stock_count_id,
                ctx=ctx,
                before=snapshot,
            )

        logger.info("Stock count deleted: ID=%s", stock_count_id)
