"""Pydantic schemas for monthly closing."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict
from uuid import UUID

from pydantic import Field

from lotto_ledger.schemas.base import CamelModel


class EntityRefs(CamelModel):
    """
    References identifying one entity and its parents.

    A missing reference for the dimension's own level means "unresolved":
    the computation is not filtered on it and the row is keyed by NIL_UUID.
    """
    bank_id: Optional[UUID] = None
    window_id: Optional[UUID] = None
    seller_id: Optional[UUID] = None


class MonthBalance(CamelModel):
    closing_balance: Decimal = Decimal("0")
    total_sales: Decimal = Decimal("0")
    total_payouts: Decimal = Decimal("0")
    total_commission: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_collected: Decimal = Decimal("0")
    ticket_count: int = 0


class DimensionCount(CamelModel):
    success: int = 0
    errors: int = 0


class MonthlyClosingResult(CamelModel):
    success: bool
    closing_month: str
    per_dimension_counts: Dict[str, DimensionCount] = Field(default_factory=dict)
    executed_at: datetime
