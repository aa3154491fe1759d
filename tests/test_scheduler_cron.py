from datetime import datetime, timezone

import pytest

from lotto_ledger.config import settings
from lotto_ledger.jobs.scheduler import (
    MONTHLY_CLOSING_JOB_ID,
    POLICY_CACHE_CLEANUP_JOB_ID,
    SETTLEMENT_JOB_ID,
    get_job_status,
    reschedule_settlement,
    settlement_trigger,
    shutdown_scheduler,
    start_scheduler,
)
from lotto_ledger.schemas.settlement import SettlementConfigUpdate
from lotto_ledger.services.settlement_config_service import (
    SettlementConfigService, next_run_time, parse_cron_schedule,
)

DEFAULT = (settings.SETTLEMENT_DEFAULT_HOUR, settings.SETTLEMENT_DEFAULT_MINUTE)


@pytest.mark.parametrize("cron,expected", [
    ("30 4 * * *", (4, 30)),
    ("0 0 * * *", (0, 0)),
    ("59 23 * * *", (23, 59)),
])
def test_parses_minute_and_hour(cron, expected):
    assert parse_cron_schedule(cron) == expected


@pytest.mark.parametrize("cron", [
    None,
    "",
    "*/5 * * * *",
    "0 3 1 * *",
    "0 3 * * 1-5",
    "60 3 * * *",
    "0 24 * * *",
    "0 3 * *",
    "garbage",
])
def test_unsupported_schedules_fall_back_to_default(cron):
    assert parse_cron_schedule(cron) == DEFAULT


def test_next_run_time_rolls_to_tomorrow():
    # 2026-10-18 10:00 UTC is 04:00 in Costa Rica (UTC-6)
    now = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)

    later_today = next_run_time("30 4 * * *", now)
    tomorrow = next_run_time("0 3 * * *", now)

    assert (later_today.day, later_today.hour, later_today.minute) == (18, 4, 30)
    assert (tomorrow.day, tomorrow.hour) == (19, 3)


def test_settlement_trigger_uses_parsed_time():
    trigger = settlement_trigger("15 2 * * *")
    fields = {field.name: str(field) for field in trigger.fields}

    assert fields["hour"] == "2"
    assert fields["minute"] == "15"
    assert str(trigger.timezone) == settings.OPERATING_TIMEZONE


async def test_start_reschedule_and_shutdown(db, session_factory):
    service = SettlementConfigService(db)
    await service.update_config(SettlementConfigUpdate(cron_schedule="45 1 * * *"), updated_by="admin")
    await db.commit()

    await start_scheduler()
    try:
        jobs = {job["id"]: job for job in get_job_status()}
        assert set(jobs) == {SETTLEMENT_JOB_ID, MONTHLY_CLOSING_JOB_ID, POLICY_CACHE_CLEANUP_JOB_ID}
        assert "hour='1'" in jobs[SETTLEMENT_JOB_ID]["trigger"]

        reschedule_settlement("5 6 * * *")
        jobs = {job["id"]: job for job in get_job_status()}
        assert "hour='6'" in jobs[SETTLEMENT_JOB_ID]["trigger"]
    finally:
        shutdown_scheduler()
