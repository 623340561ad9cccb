"""Stock models: Stock balances and the Movement journal."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.db.base import QTY, Base


class MovementType(str, Enum):
    """Kinds of journal transactions."""

    IN = "IN"  # Goods received from outside
    OUT = "OUT"  # Goods issued to outside
    TRANSFER = "TRANSFER"  # Between two locations
    ADJUST = "ADJUST"  # Stock count reconciliation / manual correction


class Stock(Base):
    """Current balance of one item at one location.

    A denormalized cache of the movement journal, maintained in the same
    transaction as every journal append. A missing row means zero.
    """

    __tablename__ = "stocks"
    __table_args__ = (
        UniqueConstraint("item_id", "location_id", name="uq_stocks_item_location"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    qty: Mapped[Decimal] = mapped_column(QTY, default=Decimal("0"), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    item: Mapped["Item"] = relationship("Item")
    location: Mapped["Location"] = relationship("Location")


class Movement(Base):
    """Journal transaction header. Created posted, never mutated."""

    __tablename__ = "movements"
    __table_args__ = (
        UniqueConstraint("reference_code", name="uq_movements_reference_code"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[MovementType] = mapped_column(SQLEnum(MovementType), nullable=False, index=True)
    reference_code: Mapped[str] = mapped_column(String(64), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    posted: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    lines: Mapped[list["MovementLine"]] = relationship(
        "MovementLine",
        back_populates="movement",
        cascade="all, delete-orphan",
        order_by="MovementLine.id",
    )


class MovementLine(Base):
    """One quantity change within a Movement.

    Direction is encoded by which side is set: only ``to_location_id`` is
    inbound, only ``from_location_id`` is outbound, both is a transfer.
    ``qty`` is always a positive magnitude.
    """

    __tablename__ = "movement_lines"
    __table_args__ = (
        CheckConstraint("qty > 0", name="qty_positive"),
        CheckConstraint(
            "from_location_id IS NOT NULL OR to_location_id IS NOT NULL",
            name="has_location",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    movement_id: Mapped[int] = mapped_column(
        ForeignKey("movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[int] = mapped_column(
        ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    from_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    to_location_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    qty: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    movement: Mapped["Movement"] = relationship("Movement", back_populates="lines")
    item: Mapped["Item"] = relationship("Item")


# Forward references
from stockledger.models.item import Item
from stockledger.models.location import Location
