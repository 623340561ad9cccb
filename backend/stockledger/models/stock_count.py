"""Stock count (physical inventory) models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.db.base import QTY, Base, TimestampMixin


class StockCountStatus(str, Enum):
    """Status of a stock count. ``posted`` is terminal."""

    DRAFT = "draft"
    POSTED = "posted"


class StockCount(Base, TimestampMixin):
    """A physical-count session scoped to one location."""

    __tablename__ = "stock_counts"
    __table_args__ = (
        UniqueConstraint("reference_code", name="uq_stock_counts_reference_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    reference_code: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[StockCountStatus] = mapped_column(
        SQLEnum(StockCountStatus, values_callable=lambda e: [m.value for m in e]),
        default=StockCountStatus.DRAFT,
        nullable=False,
        index=True,
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    note: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # ADJUST movement created on post; stays NULL when nothing differed
    movement_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("movements.id", ondelete="RESTRICT"), nullable=True
    )

    location: Mapped["Location"] = relationship("Location")
    movement: Mapped[Optional["Movement"]] = relationship("Movement")
    lines: Mapped[list["StockCountLine"]] = relationship(
        "StockCountLine",
        back_populates="stock_count",
        cascade="all, delete-orphan",
    )


class StockCountLine(Base):
    """One item's counted quantity within a stock count.

    The book quantity is not stored; it is read from the
    live stock balance whenever the line is displayed or posted.
    """

    __tablename__ = "stock_count_lines"
    __table_args__ = (
        UniqueConstraint("stock_count_id", "item_id", name="uq_stock_count_lines_count_item"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    stock_count_id: Mapped[int] = mapped_column(
        ForeignKey("stock_counts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    counted_qty: Mapped[Decimal] = mapped_column(
        QTY, default=Decimal("0"), nullable=False
    )

    stock_count: Mapped["StockCount"] = relationship("StockCount", back_populates="lines")
    item: Mapped["Item"] = relationship("Item")


# Forward references
from stockledger.models.item import Item
from stockledger.models.location import Location
from stockledger.models.stock import Movement
