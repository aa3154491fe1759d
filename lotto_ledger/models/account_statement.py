"""Daily account statement ledger.

One row per (business day, entity). Rows are created and kept up to date by
accrual while open; settlement freezes them and carry-forward fills the days
an entity had no activity but still held a balance.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from uuid import UUID, uuid4

from sqlalchemy import (
    String, Text, Boolean, Date, DateTime, ForeignKey, Integer,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from lotto_ledger.database import Base
from lotto_ledger.db_types import UUIDType, Money


class PaymentType(str, Enum):
    PAYMENT = "payment"        # Money handed to the entity
    COLLECTION = "collection"  # Money collected from the entity


def parse_payment_type(value) -> Optional[PaymentType]:
    """Stored type as PaymentType, ignoring case; None when unrecognised."""
    if value is None:
        return None
    try:
        return PaymentType(str(value).strip().lower())
    except ValueError:
        return None


class AccountStatement(Base):
    __tablename__ = "account_statements"
    __table_args__ = (
        UniqueConstraint("statement_date", "dimension", "entity_id", name="uq_account_statement_day_entity"),
        Index("ix_account_statements_settle_queue", "is_settled", "statement_date"),
        Index("ix_account_statements_entity_date", "dimension", "entity_id", "statement_date"),
    )

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)

    statement_date: Mapped[date] = mapped_column(Date, nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)  # YYYY-MM

    # Entity key
    dimension: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDType, nullable=False)

    # Parent links
    bank_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("banks.id"), nullable=True)
    window_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("windows.id"), nullable=True)
    seller_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("sellers.id"), nullable=True)

    # Day activity
    ticket_count: Mapped[int] = mapped_column(Integer, default=0)
    total_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_payouts: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    seller_commission: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    window_commission: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))  # sales - payouts - commission
    total_paid: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_collected: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    # Running balances
    remaining_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    accumulated_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    # Settlement state: open (False/True) -> settled (True/False), one way
    is_settled: Mapped[bool] = mapped_column(Boolean, default=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, default=True)
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    settled_by: Mapped[Optional[str]] = mapped_column(String(100))  # None when the scheduler settled it

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    payments: Mapped[List["AccountPayment"]] = relationship(back_populates="statement")

    def __repr__(self) -> str:
        return f"<AccountStatement {self.dimension}:{self.entity_id} {self.statement_date}>"


class AccountPayment(Base):
    """A payment or collection recorded against one (day, entity)."""
    __tablename__ = "account_payments"
    __table_args__ = (
        Index("ix_account_payments_entity_date", "dimension", "entity_id", "payment_date"),
    )

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    account_statement_id: Mapped[UUID] = mapped_column(
        UUIDType, ForeignKey("account_statements.id"), nullable=False, index=True
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    dimension: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDType, nullable=False)
    bank_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("banks.id"), nullable=True)
    window_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("windows.id"), nullable=True)
    seller_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("sellers.id"), nullable=True)

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Reversed payments are excluded from every aggregate
    is_reversed: Mapped[bool] = mapped_column(Boolean, default=False)
    reversed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reversed_by: Mapped[Optional[str]] = mapped_column(String(100))

    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    statement: Mapped["AccountStatement"] = relationship(back_populates="payments")
