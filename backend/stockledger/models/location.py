"""Location model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, TimestampMixin


class Location(Base, TimestampMixin):
    """Physical storage place for stock (warehouse, shelf, van, ...)."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # warehouse, showroom, ...
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
