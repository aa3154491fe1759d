"""
Settlement configuration service.

The settlement_config table holds a single row. It is created with safe
defaults (disabled, 7 days, 1000 rows) the first time anyone asks for it.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lotto_ledger.config import settings
from lotto_ledger.models.settlement_config import SettlementConfig
from lotto_ledger.schemas.settlement import SettlementConfigUpdate, SettlementHealth

logger = logging.getLogger(__name__)


def parse_cron_schedule(cron_schedule: Optional[str]) -> Tuple[int, int]:
    """
    Parse a "M H * * *" schedule into (hour, minute).

    Only a numeric minute and hour are supported. Anything else falls back to
    the default time of day.
    """
    default = (settings.SETTLEMENT_DEFAULT_HOUR, settings.SETTLEMENT_DEFAULT_MINUTE)
    if not cron_schedule:
        return default

    parts = cron_schedule.split()
    if len(parts) != 5 or any(part != "*" for part in parts[2:]):
        logger.warning(f"Unsupported cron schedule '{cron_schedule}', using default {default[0]:02d}:{default[1]:02d}")
        return default

    minute, hour = parts[0], parts[1]
    if not (minute.isdigit() and hour.isdigit()):
        logger.warning(f"Unsupported cron schedule '{cron_schedule}', using default {default[0]:02d}:{default[1]:02d}")
        return default

    minute, hour = int(minute), int(hour)
    if minute > 59 or hour > 23:
        logger.warning(f"Out of range cron schedule '{cron_schedule}', using default {default[0]:02d}:{default[1]:02d}")
        return default

    return hour, minute


def next_run_time(cron_schedule: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Next occurrence of the schedule, as an aware datetime in the operating timezone."""
    hour, minute = parse_cron_schedule(cron_schedule)
    local_now = (now or datetime.now(timezone.utc)).astimezone(settings.operating_tz)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate += timedelta(days=1)
    return candidate


class SettlementConfigService:
    """Read, update and record telemetry on the settlement config row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_config(self) -> Optional[SettlementConfig]:
        result = await self.db.execute(
            select(SettlementConfig).order_by(SettlementConfig.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create_config(self) -> SettlementConfig:
        config = await self.get_config()
        if config is not None:
            return config

        config = SettlementConfig(
            enabled=False,
            settlement_age_days=settings.SETTLEMENT_DEFAULT_AGE_DAYS,
            batch_size=settings.SETTLEMENT_DEFAULT_BATCH_SIZE,
        )
        self.db.add(config)
        await self.db.flush()
        logger.info(
            f"Created default settlement config (enabled=False, "
            f"age_days={config.settlement_age_days}, batch_size={config.batch_size})"
        )
        return config

    async def update_config(
        self,
        update: SettlementConfigUpdate,
        updated_by: Optional[str] = None,
    ) -> SettlementConfig:
        config = await self.get_or_create_config()

        # cron_schedule may be cleared back to the default; the rest are NOT NULL
        changes = {
            name: value
            for name, value in update.model_dump(exclude_unset=True).items()
            if value is not None or name == "cron_schedule"
        }
        for field_name, value in changes.items():
            setattr(config, field_name, value)
        config.updated_by = updated_by

        await self.db.flush()
        logger.info(f"Settlement config updated by {updated_by}: {changes}")
        return config

    async def record_run_telemetry(
        self,
        config: SettlementConfig,
        executed_at: datetime,
        settled_count: int,
        skipped_count: int,
        error_count: int,
        error_message: Optional[str] = None,
    ) -> None:
        """Overwrite last-run telemetry; called after every run whatever the outcome."""
        config.last_execution = executed_at
        config.last_settled_count = settled_count
        config.last_skipped_count = skipped_count
        config.last_error_count = error_count
        config.last_error_message = error_message[:1000] if error_message else None
        await self.db.flush()

    async def get_health_status(self, now: Optional[datetime] = None) -> SettlementHealth:
        config = await self.get_or_create_config()
        return SettlementHealth(
            enabled=config.enabled,
            last_execution=config.last_execution,
            next_scheduled_execution=next_run_time(config.cron_schedule, now) if config.enabled else None,
            last_settled_count=config.last_settled_count or 0,
            last_skipped_count=config.last_skipped_count or 0,
            last_error_count=config.last_error_count or 0,
            last_error_message=config.last_error_message,
        )
