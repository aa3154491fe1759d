"""Pydantic schemas for settlement configuration and run summaries."""
from datetime import datetime
from typing import Optional, List

from pydantic import Field

from lotto_ledger.schemas.base import CamelModel


class SettlementConfigUpdate(CamelModel):
    """Partial update; unset fields are left unchanged."""
    enabled: Optional[bool] = None
    settlement_age_days: Optional[int] = Field(None, ge=1, le=365)
    batch_size: Optional[int] = Field(None, ge=100, le=10000)
    cron_schedule: Optional[str] = Field(None, max_length=100)


class SettlementHealth(CamelModel):
    enabled: bool
    last_execution: Optional[datetime] = None
    next_scheduled_execution: Optional[datetime] = None
    last_settled_count: int = 0
    last_skipped_count: int = 0
    last_error_count: int = 0
    last_error_message: Optional[str] = None


class StatementError(CamelModel):
    statement_id: str
    error: str


class SettlementBatchResult(CamelModel):
    """Outcome of one execute_settlement_batch call."""
    processed_count: int = 0
    settled_count: int = 0
    skipped_count: int = 0
    errors: List[StatementError] = Field(default_factory=list)
    more_pending: bool = False

    @property
    def error_count(self) -> int:
        return len(self.errors)


class CarryForwardSummary(CamelModel):
    created_count: int = 0
    skipped_count: int = 0
    error_count: int = 0


class SettlementRunResult(CamelModel):
    """Summary returned by execute_settlement (manual or scheduled)."""
    success: bool
    settled_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    executed_at: datetime
    errors: List[StatementError] = Field(default_factory=list)
    carry_forward: CarryForwardSummary = Field(default_factory=CarryForwardSummary)
