"""Monthly closing balances, recomputed from source tables for audit."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, ForeignKey, Integer, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from lotto_ledger.database import Base
from lotto_ledger.db_types import UUIDType, Money


class MonthlyClosingBalance(Base):
    """
    Independently computed month snapshot per (month, dimension, entity).

    entity_id holds NIL_UUID when the entity component is unresolved
    (network-wide aggregate), so the unique key never contains NULL and
    writes can be a single INSERT .. ON CONFLICT DO UPDATE.
    """
    __tablename__ = "monthly_closing_balances"
    __table_args__ = (
        UniqueConstraint("closing_month", "dimension", "entity_id", name="uq_monthly_closing_entity"),
        Index("ix_monthly_closing_dimension_entity", "dimension", "entity_id"),
    )

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)

    closing_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)  # YYYY-MM
    dimension: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDType, nullable=False)

    bank_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("banks.id"), nullable=True)
    window_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("windows.id"), nullable=True)
    seller_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("sellers.id"), nullable=True)

    closing_balance: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_sales: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_payouts: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_commission: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_paid: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_collected: Mapped[Decimal] = mapped_column(Money, nullable=False)
    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    closing_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
