"""Process-wide settlement configuration (singleton row)."""
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import String, Text, Boolean, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from lotto_ledger.database import Base
from lotto_ledger.db_types import UUIDType


class SettlementConfig(Base):
    __tablename__ = "settlement_config"

    id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)

    enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    settlement_age_days: Mapped[int] = mapped_column(Integer, default=7)
    batch_size: Mapped[int] = mapped_column(Integer, default=1000)
    cron_schedule: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)  # "M H * * *"

    # Last-run telemetry, overwritten every run
    last_execution: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_settled_count: Mapped[int] = mapped_column(Integer, default=0)
    last_skipped_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error_message: Mapped[Optional[str]] = mapped_column(Text)

    updated_by: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
