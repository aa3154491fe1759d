"""Ticket, bet line and draw source tables.

Tickets are produced by the sales flow; bet lines carry the commission
snapshot resolved once at pricing time and never recomputed.
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from uuid import UUID, uuid4

from sqlalchemy import String, Boolean, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

from lotto_ledger.database import Base
from lotto_ledger.db_types import UUIDType, Money, Percent


class BetType(str, Enum):
    NUMERO = "NUMERO"
    REVENTADO = "REVENTADO"


class CommissionOrigin(str, Enum):
    """Hierarchy level whose policy produced a commission."""
    SELLER = "SELLER"
    WINDOW = "WINDOW"
    BANK = "BANK"


class DrawStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    EVALUATED = "EVALUATED"


class TicketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EVALUATED = "EVALUATED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Draw(Base):
    __tablename__ = "draws"

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    lottery_id: Mapped[UUID] = mapped_column(UUIDType, nullable=False, index=True)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="SCHEDULED", index=True)
    evaluated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Ticket(Base):
    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_business_date_seller", "business_date", "seller_id"),
        Index("ix_tickets_business_date_window", "business_date", "window_id"),
    )

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    draw_id: Mapped[UUID] = mapped_column(UUIDType, ForeignKey("draws.id"), nullable=False, index=True)
    lottery_id: Mapped[UUID] = mapped_column(UUIDType, nullable=False)

    bank_id: Mapped[UUID] = mapped_column(UUIDType, ForeignKey("banks.id"), nullable=False, index=True)
    window_id: Mapped[UUID] = mapped_column(UUIDType, ForeignKey("windows.id"), nullable=False)
    seller_id: Mapped[Optional[UUID]] = mapped_column(UUIDType, ForeignKey("sellers.id"), nullable=True)

    # Calendar day in the operating timezone, not the UTC day of created_at
    business_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(50), default="ACTIVE")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_payout: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_commission: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    draw: Mapped["Draw"] = relationship()
    bet_lines: Mapped[List["BetLine"]] = relationship(back_populates="ticket")


class BetLine(Base):
    __tablename__ = "bet_lines"

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(UUIDType, ForeignKey("tickets.id"), nullable=False, index=True)

    bet_type: Mapped[str] = mapped_column(String(50), default="NUMERO")
    number: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    final_multiplier_x: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    is_excluded: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Seller commission snapshot (seller -> window -> bank)
    commission_percent: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    commission_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    commission_origin: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    commission_rule_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Window commission snapshot (window -> bank)
    window_commission_percent: Mapped[Decimal] = mapped_column(Percent, default=Decimal("0"))
    window_commission_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    window_commission_origin: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    window_commission_rule_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    ticket: Mapped["Ticket"] = relationship(back_populates="bet_lines")
