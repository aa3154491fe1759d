"""Pydantic schemas for commission policy documents and resolution results."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lotto_ledger.schemas.base import CamelModel
from lotto_ledger.models.ticket import BetType, CommissionOrigin


class MultiplierRange(BaseModel):
    """Inclusive multiplier bounds."""
    min: Decimal = Field(..., ge=0)
    max: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min > self.max:
            raise ValueError(f"multiplierRange.min ({self.min}) exceeds max ({self.max})")
        return self

    def contains(self, value: Decimal) -> bool:
        return self.min <= value <= self.max


class CommissionRule(CamelModel):
    id: Optional[str] = None
    lottery_id: Optional[str] = None     # None matches any lottery
    bet_type: Optional[BetType] = None   # None matches any bet type
    multiplier_range: Optional[MultiplierRange] = None
    percent: Decimal = Field(..., ge=0, le=100, decimal_places=2)


class CommissionPolicy(CamelModel):
    """
    Version 1 policy document, owned by one seller, window or bank.

    Rules are evaluated in stored order; the first match wins.
    """
    model_config = ConfigDict(frozen=True)

    version: Literal[1]
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    default_percent: Decimal = Field(..., ge=0, le=100, decimal_places=2)
    rules: List[CommissionRule] = Field(default_factory=list)

    def is_effective(self, as_of: datetime) -> bool:
        if self.effective_from and _aware(self.effective_from) > as_of:
            return False
        if self.effective_to and _aware(self.effective_to) < as_of:
            return False
        return True


class CommissionMatchInput(CamelModel):
    model_config = ConfigDict(frozen=True)

    lottery_id: str
    bet_type: BetType
    final_multiplier_x: Optional[Decimal] = None
    amount: Decimal = Field(..., ge=0)


class CommissionSnapshot(CamelModel):
    """Resolved commission stored on a bet line."""
    model_config = ConfigDict(frozen=True)

    percent: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    origin: Optional[CommissionOrigin] = None
    rule_id: Optional[str] = None


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
