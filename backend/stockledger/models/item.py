"""Item model."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlalchemy import Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, TimestampMixin


class ItemKind(str, Enum):
    """Kind of stock-keeping unit."""

    PART = "PART"
    MACHINE = "MACHINE"
    OTHER = "OTHER"


class Item(Base, TimestampMixin):
    """A trackable stock-keeping unit.

    Owned by the item catalog; the ledger only reads it. SKU and name must
    not change once movements reference the item.
    """

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    kind: Mapped[ItemKind] = mapped_column(
        SQLEnum(ItemKind), default=ItemKind.PART, nullable=False
    )
