"""Movement journal - the append-only audit trail of quantity changes.

``append_movement`` only records. ``record_movement`` is the receiving /
issuing path: it records and applies every line to the quantity store in
the same transaction. Neither commits; run them inside a ``UnitOfWork``.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockledger.core.decimal_utils import ZERO, parse_quantity, quantize
from stockledger.core.exceptions import (
    DuplicateReference,
    InsufficientStock,
    InvalidMovement,
    ItemNotFound,
    LocationNotFound,
    MovementNotFound,
)
from stockledger.db.unit_of_work import flush_or_raise
from stockledger.models.item import Item
from stockledger.models.location import Location
from stockledger.models.stock import Movement, MovementLine, MovementType, Stock
from stockledger.services.quantity_store import QuantityStore

logger = logging.getLogger(__name__)


@dataclass
class MovementLineInput:
    """One requested line of a movement, before validation."""

    item_id: int
    qty: Any
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    note: Optional[str] = None


@dataclass
class BalanceDiscrepancy:
    """A stock row that disagrees with the journal."""

    item_id: int
    location_id: int
    cached_qty: Decimal
    journal_qty: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached_qty - self.journal_qty


def _check_direction(movement_type: MovementType, from_id: Optional[int], to_id: Optional[int]) -> None:
    if movement_type == MovementType.IN:
        if to_id is None or from_id is not None:
            raise InvalidMovement("IN lines require to_location_id only")
    elif movement_type == MovementType.OUT:
        if from_id is None or to_id is not None:
            raise InvalidMovement("OUT lines require from_location_id only")
    elif movement_type == MovementType.TRANSFER:
        if from_id is None or to_id is None:
            raise InvalidMovement("TRANSFER lines require from_location_id and to_location_id")
        if from_id == to_id:
            raise InvalidMovement("TRANSFER from and to locations must differ")
    elif movement_type == MovementType.ADJUST:
        if (from_id is None) == (to_id is None):
            raise InvalidMovement("ADJUST lines require exactly one of from_location_id / to_location_id")


class MovementJournal:
    """Append-only access to ``Movement`` / ``MovementLine`` records."""

    def __init__(self, db: Session, store: Optional[QuantityStore] = None):
        self.db = db
        self.store = store or QuantityStore(db)

    def reference_exists(self, reference_code: str) -> bool:
        return (
            self.db.query(Movement.id)
            .filter(Movement.reference_code == reference_code)
            .first()
            is not None
        )

    def _require_references(self, lines: Sequence[MovementLineInput]) -> None:
        item_ids = {line.item_id for line in lines}
        found_items = {
            row[0] for row in self.db.query(Item.id).filter(Item.id.in_(item_ids)).all()
        }
        missing_items = sorted(item_ids - found_items)
        if missing_items:
            raise ItemNotFound(missing_items[0])

        location_ids = {
            loc
            for line in lines
            for loc in (line.from_location_id, line.to_location_id)
            if loc is not None
        }
        found_locations = {
            row[0] for row in self.db.query(Location.id).filter(Location.id.in_(location_ids)).all()
        }
        missing_locations = sorted(location_ids - found_locations)
        if missing_locations:
            raise LocationNotFound(missing_locations[0])

    def append_movement(
        self,
        movement_type: MovementType,
        reference_code: str,
        note: Optional[str],
        lines: Sequence[MovementLineInput],
        created_by: Optional[int] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Movement:
        """Create one posted movement and its lines as a single unit.

        Raises:
            InvalidMovement: empty reference, no lines, a non-positive
                quantity or a direction that does not fit the type.
            DuplicateReference: the reference code is already used.
            ItemNotFound / LocationNotFound: a line references a missing record.
        """
        movement_type = MovementType(movement_type)
        reference_code = (reference_code or "").strip()
        if not reference_code:
            raise InvalidMovement("Movement reference code is required")
        if not lines:
            raise InvalidMovement("Movement requires at least one line")

        prepared: List[MovementLine] = []
        for line in lines:
            qty = parse_quantity(line.qty)
            if qty <= 0:
                raise InvalidMovement(f"Line quantity must be > 0 (item {line.item_id}, qty {qty})")
            _check_direction(movement_type, line.from_location_id, line.to_location_id)
            prepared.append(
                MovementLine(
                    item_id=line.item_id,
                    from_location_id=line.from_location_id,
                    to_location_id=line.to_location_id,
                    qty=qty,
                    note=line.note,
                )
            )
        self._require_references(lines)

        if self.reference_exists(reference_code):
            logger.warning("Movement reference collision: %s", reference_code)
            raise DuplicateReference(reference_code, "Movement")

        movement = Movement(
            type=movement_type,
            reference_code=reference_code,
            note=note,
            posted=True,
            created_by=created_by,
            lines=prepared,
        )
        if occurred_at is not None:
            movement.occurred_at = occurred_at
        self.db.add(movement)
        # The unique constraint on reference_code is the final arbiter under races
        flush_or_raise(self.db)

        logger.info(
            "Movement appended: ID=%s, type=%s, ref=%s, lines=%s",
            movement.id,
            movement_type.value,
            reference_code,
            len(prepared),
        )
        return movement

    def record_movement(
        self,
        movement_type: MovementType,
        reference_code: str,
        note: Optional[str],
        lines: Sequence[MovementLineInput],
        allow_negative: bool = False,
        created_by: Optional[int] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Movement:
        """Append a movement and apply it to the quantity store.

        Outbound sides are checked against the locked balance and raise
        ``InsufficientStock`` unless *allow_negative*.
        """
        movement = self.append_movement(
            movement_type,
            reference_code,
            note,
            lines,
            created_by=created_by,
            occurred_at=occurred_at,
        )

        for line in movement.lines:
            if line.from_location_id is not None:
                available = self.store.get_quantity(line.item_id, line.from_location_id, lock=True)
                if not allow_negative and available < line.qty:
                    raise InsufficientStock(
                        line.item_id, line.from_location_id, available, quantize(line.qty)
                    )
                self.store.set_quantity(line.item_id, line.from_location_id, available - line.qty)
            if line.to_location_id is not None:
                self.store.apply_delta(line.item_id, line.to_location_id, line.qty)

        return movement

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    def get_movement(self, movement_id: int) -> Movement:
        movement = self.db.get(Movement, movement_id)
        if movement is None:
            raise MovementNotFound(movement_id)
        return movement

    def list_movements(
        self,
        movement_type: Optional[MovementType] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[Movement], int]:
        query = self.db.query(Movement)
        if movement_type:
            query = query.filter(Movement.type == MovementType(movement_type))
        total = query.count()
        rows = (
            query.order_by(Movement.created_at.desc(), Movement.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return rows, total

    # ------------------------------------------------------------------
    # Integrity audit
    # ------------------------------------------------------------------
    def compute_balances(self) -> Dict[Tuple[int, int], Decimal]:
        """Balances derived from the journal alone, keyed by (item, location)."""
        balances: Dict[Tuple[int, int], Decimal] = defaultdict(lambda: ZERO)

        inbound = (
            self.db.query(MovementLine.item_id, MovementLine.to_location_id, func.sum(MovementLine.qty))
            .filter(MovementLine.to_location_id.isnot(None))
            .group_by(MovementLine.item_id, MovementLine.to_location_id)
            .all()
        )
        for item_id, location_id, total in inbound:
            balances[(item_id, location_id)] += Decimal(str(total))

        outbound = (
            self.db.query(MovementLine.item_id, MovementLine.from_location_id, func.sum(MovementLine.qty))
            .filter(MovementLine.from_location_id.isnot(None))
            .group_by(MovementLine.item_id, MovementLine.from_location_id)
            .all()
        )
        for item_id, location_id, total in outbound:
            balances[(item_id, location_id)] -= Decimal(str(total))

        return {key: quantize(value) for key, value in balances.items()}

    def audit_balances(self) -> List[BalanceDiscrepancy]:
        """Compare cached stock rows with journal-derived balances."""
        derived = self.compute_balances()
        cached = {
            (row.item_id, row.location_id): quantize(row.qty)
            for row in self.db.query(Stock).all()
        }

        discrepancies = []
        for key in sorted(set(derived) | set(cached)):
            cached_qty = cached.get(key, quantize(ZERO))
            journal_qty = derived.get(key, quantize(ZERO))
            if cached_qty != journal_qty:
                discrepancies.append(
                    BalanceDiscrepancy(
                        item_id=key[0],
                        location_id=key[1],
                        cached_qty=cached_qty,
                        journal_qty=journal_qty,
                    )
                )
        return discrepancies

    def rebuild_balances(self, pairs: Optional[Iterable[Tuple[int, int]]] = None) -> List[BalanceDiscrepancy]:
        """Rewrite drifted stock rows to their journal-derived values.

        Returns the discrepancies that were corrected. Does not commit.
        """
        discrepancies = self.audit_balances()
        if pairs is not None:
            wanted = set(pairs)
            discrepancies = [d for d in discrepancies if (d.item_id, d.location_id) in wanted]

        for d in discrepancies:
            self.store.set_quantity(d.item_id, d.location_id, d.journal_qty)

        if discrepancies:
            logger.warning("Rebuilt %s stock balances from the journal", len(discrepancies))
        return discrepancies
