"""Posting against a file-backed SQLite database from two sessions.

The in-memory fixtures share one connection, so they cannot show two
transactions competing for the same location's balances.
"""

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from stockledger.core.exceptions import TransactionFailure
from stockledger.db.base import Base
from stockledger.db.session import build_engine
from stockledger.db.unit_of_work import UnitOfWork
from stockledger.models.item import Item
from stockledger.models.location import Location
from stockledger.models.stock import Movement, MovementType
from stockledger.models.stock_count import StockCountStatus
from stockledger.services.movement_journal import MovementJournal, MovementLineInput
from stockledger.services.quantity_store import QuantityStore
from stockledger.services.stock_count_service import StockCountService


@pytest.fixture
def file_engine(tmp_path):
    """File-backed engine with a short lock wait."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}", lock_timeout=0.2)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def two_counts(file_engine):
    """KHO-01 with A=10 and two drafts: KK-1 counted 8, KK-2 counted 5."""
    Factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    session_a = Factory()
    session_b = Factory()

    location = Location(code="KHO-01", name="Main warehouse", active=True)
    item = Item(sku="A-001", name="Item A", unit="pcs")
    session_a.add_all([location, item])
    session_a.commit()
    location_id, item_id = location.id, item.id

    with UnitOfWork(session_a):
        MovementJournal(session_a).record_movement(
            MovementType.IN,
            "GRN-0001",
            None,
            [MovementLineInput(item_id=item_id, qty="10", to_location_id=location_id)],
        )

    service = StockCountService(session_a)
    first = service.create_count(location_id, reference_code="KK-1")
    first_id, first_line_id = first.id, first.lines[0].id
    second = service.create_count(location_id, reference_code="KK-2")
    second_id, second_line_id = second.id, second.lines[0].id
    service.update_line(first_line_id, "8")
    service.update_line(second_line_id, "5")
    session_a.close()

    yield {
        "session_a": session_a,
        "session_b": session_b,
        "location_id": location_id,
        "item_id": item_id,
        "first_id": first_id,
        "second_id": second_id,
    }

    session_a.close()
    session_b.close()


def test_post_holds_the_location_until_commit(two_counts, monkeypatch):
    s = two_counts
    session_a, session_b = s["session_a"], s["session_b"]
    original_get_quantities = QuantityStore.get_quantities
    interleaved = {"done": False}

    def get_quantities_then_compete(self, location_id, item_ids=None, lock=False):
        balances = original_get_quantities(self, location_id, item_ids, lock=lock)
        if lock and self.db is session_a and not interleaved["done"]:
            interleaved["done"] = True
            # KK-1 has read its book quantity; KK-2 must not slip in before it commits
            with pytest.raises(TransactionFailure):
                StockCountService(session_b).post_count(s["second_id"])
        return balances

    monkeypatch.setattr(QuantityStore, "get_quantities", get_quantities_then_compete)

    result = StockCountService(session_a).post_count(s["first_id"])
    assert interleaved["done"]
    assert [adj.diff for adj in result.adjustments] == [Decimal("-2")]
    session_a.close()
    monkeypatch.undo()

    service_b = StockCountService(session_b)
    assert service_b.get_count(s["second_id"]).status == StockCountStatus.DRAFT
    assert QuantityStore(session_b).get_quantity(s["item_id"], s["location_id"]) == Decimal("8")

    # Resubmitting recomputes against the balance KK-1 left behind
    retry = service_b.post_count(s["second_id"])
    assert [adj.book_qty for adj in retry.adjustments] == [Decimal("8")]
    assert [adj.diff for adj in retry.adjustments] == [Decimal("-3")]

    assert QuantityStore(session_b).get_quantity(s["item_id"], s["location_id"]) == Decimal("5")
    assert MovementJournal(session_b).audit_balances() == []
    assert session_b.query(Movement).filter(Movement.type == MovementType.ADJUST).count() == 2


def test_sequential_posts_from_separate_sessions(two_counts):
    s = two_counts
    StockCountService(s["session_a"]).post_count(s["first_id"])
    s["session_a"].close()

    StockCountService(s["session_b"]).post_count(s["second_id"])

    assert QuantityStore(s["session_b"]).get_quantity(s["item_id"], s["location_id"]) == Decimal("5")
    assert MovementJournal(s["session_b"]).audit_balances() == []
