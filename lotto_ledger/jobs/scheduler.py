"""
APScheduler configuration for the accounting jobs.

Jobs:
- account_settlement: daily at the persisted cron time (default 03:00),
  settlement followed by carry-forward
- monthly_closing: 1st of each month at 02:00, closes the previous month
- policy_cache_cleanup: drops expired parsed commission policies

All triggers use the operating timezone. Every job is single-flight
(max_instances=1) and coalesces missed runs.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.cron import CronTrigger

from lotto_ledger import database
from lotto_ledger.config import settings
from lotto_ledger.services.settlement_config_service import SettlementConfigService, parse_cron_schedule

logger = logging.getLogger(__name__)

SETTLEMENT_JOB_ID = 'account_settlement'
MONTHLY_CLOSING_JOB_ID = 'monthly_closing'
POLICY_CACHE_CLEANUP_JOB_ID = 'policy_cache_cleanup'

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': settings.SCHEDULER_MISFIRE_GRACE_SECONDS,
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.OPERATING_TIMEZONE,
)


def settlement_trigger(cron_schedule: Optional[str]) -> CronTrigger:
    hour, minute = parse_cron_schedule(cron_schedule)
    return CronTrigger(hour=hour, minute=minute, timezone=settings.operating_tz)


async def run_settlement_job():
    """Called by APScheduler."""
    from lotto_ledger.jobs.settlement_job import trigger_scheduled

    result = await trigger_scheduled()
    logger.info(
        f"Job '{SETTLEMENT_JOB_ID}' completed: success={result.success}, "
        f"{result.settled_count} settled, {result.error_count} errors"
    )


async def run_monthly_closing_job():
    """Called by APScheduler."""
    from lotto_ledger.jobs.monthly_closing_job import execute_monthly_closing

    try:
        result = await execute_monthly_closing()
        logger.info(f"Job '{MONTHLY_CLOSING_JOB_ID}' completed for {result.closing_month}: success={result.success}")
    except Exception as e:
        logger.error(f"Job '{MONTHLY_CLOSING_JOB_ID}' failed: {e}")


def run_policy_cache_cleanup():
    from lotto_ledger.services.commission.resolver import get_commission_resolver

    removed = get_commission_resolver().cache.cleanup_expired()
    if removed:
        logger.debug(f"Policy cache cleanup removed {removed} entries")


async def _load_cron_schedule() -> Optional[str]:
    """Persisted cron schedule; None (default time) if the config can't be read."""
    try:
        async with database.get_db_session() as db:
            config = await SettlementConfigService(db).get_or_create_config()
            return config.cron_schedule
    except Exception as e:
        logger.warning(f"Could not read settlement schedule, using default: {e}")
        return None


async def start_scheduler():
    """Start the background job scheduler."""
    if scheduler.running:
        return

    cron_schedule = await _load_cron_schedule()

    scheduler.add_job(
        run_settlement_job,
        settlement_trigger(cron_schedule),
        id=SETTLEMENT_JOB_ID,
        name='Account Statement Settlement + Carry-Forward',
        replace_existing=True,
    )

    scheduler.add_job(
        run_monthly_closing_job,
        CronTrigger(
            day=settings.MONTHLY_CLOSING_DAY,
            hour=settings.MONTHLY_CLOSING_HOUR,
            minute=0,
            timezone=settings.operating_tz,
        ),
        id=MONTHLY_CLOSING_JOB_ID,
        name='Monthly Closing (previous month)',
        replace_existing=True,
    )

    scheduler.add_job(
        run_policy_cache_cleanup,
        'interval',
        minutes=10,
        id=POLICY_CACHE_CLEANUP_JOB_ID,
        name='Commission Policy Cache Cleanup',
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    # Log all scheduled jobs
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def reschedule_settlement(cron_schedule: Optional[str]):
    """Apply a new settlement time after a config update."""
    trigger = settlement_trigger(cron_schedule)
    if scheduler.get_job(SETTLEMENT_JOB_ID) is None:
        logger.warning(f"Job '{SETTLEMENT_JOB_ID}' not scheduled, nothing to reschedule")
        return None
    job = scheduler.reschedule_job(SETTLEMENT_JOB_ID, trigger=trigger)
    logger.info(f"Rescheduled '{SETTLEMENT_JOB_ID}' to {trigger} - Next run: {job.next_run_time}")
    return job


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
