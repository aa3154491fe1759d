"""Operating hierarchy: bank -> window -> seller.

Each level may carry a commission policy document (the policy store).
The accounting core only reads these tables.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from uuid import UUID, uuid4

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column

from lotto_ledger.database import Base
from lotto_ledger.db_types import UUIDType, JSONType


class Dimension(str, Enum):
    """Hierarchy level a ledger row belongs to."""
    BANK = "bank"
    WINDOW = "window"
    SELLER = "seller"


class Bank(Base):
    __tablename__ = "banks"

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Policy document: {version, effectiveFrom, effectiveTo, defaultPercent, rules}
    commission_policy: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    windows: Mapped[List["Window"]] = relationship(back_populates="bank")


class Window(Base):
    """Sales window (listero) grouping sellers under one bank."""
    __tablename__ = "windows"

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    bank_id: Mapped[UUID] = mapped_column(UUIDType, ForeignKey("banks.id"), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    commission_policy: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    bank: Mapped["Bank"] = relationship(back_populates="windows")
    sellers: Mapped[List["Seller"]] = relationship(back_populates="window")


class Seller(Base):
    __tablename__ = "sellers"

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    window_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("windows.id"), nullable=True, index=True)
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    commission_policy: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    window: Mapped[Optional["Window"]] = relationship(back_populates="sellers")
