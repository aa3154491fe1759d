"""
Account settlement job.

One invocation = settlement batch + carry-forward, in that order, so a
balance settled tonight is already the "last known" row carry-forward reads.

Entry points:
- trigger_manual(operator_id): runs even when settlement is disabled
- trigger_scheduled(): no-op when settlement is disabled

Both go through execute_settlement(), which registers the run as an active
operation, warms the connection up and records telemetry.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from lotto_ledger import database
from lotto_ledger.core.active_operations import get_active_operations, ShutdownInProgressError
from lotto_ledger.core.business_date import today_business_date, settlement_cutoff
from lotto_ledger.core.connection_warmup import warmup_connection
from lotto_ledger.schemas.settlement import (
    CarryForwardSummary, SettlementBatchResult, SettlementRunResult, StatementError,
)
from lotto_ledger.services.carry_forward_service import carry_forward_balances
from lotto_ledger.services.settlement_config_service import SettlementConfigService
from lotto_ledger.services.settlement_service import execute_settlement_batch, SettlementError

logger = logging.getLogger(__name__)


def _failed(executed_at: datetime, code: str, message: str) -> SettlementRunResult:
    return SettlementRunResult(
        success=False,
        executed_at=executed_at,
        error_count=1,
        errors=[StatementError(statement_id=code, error=message)],
    )


async def _run_carry_forward(today) -> CarryForwardSummary:
    async with database.async_session_factory() as db:
        try:
            summary = await carry_forward_balances(db, today)
            await db.commit()
            return summary
        except Exception as e:
            await db.rollback()
            logger.error(f"Carry-forward to {today} failed: {e}")
            return CarryForwardSummary(error_count=1)


async def _run_settlement(operator_id: Optional[str], manual: bool, executed_at: datetime) -> SettlementRunResult:
    if not await warmup_connection(context="settlement"):
        logger.error("Settlement run skipped: database connection could not be established")
        return _failed(executed_at, "WARMUP", "Database connection warm-up failed")

    today = today_business_date()

    async with database.async_session_factory() as db:
        config_service = SettlementConfigService(db)
        try:
            config = await config_service.get_or_create_config()
        except Exception as e:
            raise SettlementError("Cannot read settlement config", {"error": str(e)})

        if not manual and not config.enabled:
            await db.commit()
            logger.info("Settlement is disabled, scheduled run skipped")
            return SettlementRunResult(success=True, executed_at=executed_at)

        cutoff_date = settlement_cutoff(config.settlement_age_days, today)
        logger.info(
            f"Settlement started ({'manual by ' + str(operator_id) if manual else 'scheduled'}): "
            f"cutoff {cutoff_date}, batch size {config.batch_size}"
        )

        batch = SettlementBatchResult()
        run_error: Optional[str] = None
        try:
            batch = await execute_settlement_batch(db, cutoff_date, config.batch_size, settled_by=operator_id)
            await db.commit()
        except Exception as e:
            await db.rollback()
            run_error = str(e)
            logger.error(f"Settlement batch failed before commit (cutoff {cutoff_date}): {e}")

        last_error = run_error or (batch.errors[0].error if batch.errors else None)
        config = await config_service.get_or_create_config()
        await config_service.record_run_telemetry(
            config,
            executed_at=executed_at,
            settled_count=batch.settled_count,
            skipped_count=batch.skipped_count,
            error_count=batch.error_count + (1 if run_error else 0),
            error_message=last_error,
        )
        await db.commit()

    carry_forward = await _run_carry_forward(today)

    errors = list(batch.errors)
    if run_error:
        errors.append(StatementError(statement_id="BATCH", error=run_error))

    result = SettlementRunResult(
        success=not errors and carry_forward.error_count == 0,
        settled_count=batch.settled_count,
        skipped_count=batch.skipped_count,
        error_count=len(errors),
        executed_at=executed_at,
        errors=errors,
        carry_forward=carry_forward,
    )
    logger.info(
        f"Settlement finished: success={result.success}, {result.settled_count} settled, "
        f"{result.skipped_count} skipped, {result.error_count} errors; carry-forward "
        f"{carry_forward.created_count} created, {carry_forward.error_count} errors"
    )
    return result


async def execute_settlement(operator_id: Optional[str] = None, *, manual: Optional[bool] = None) -> SettlementRunResult:
    """
    Run settlement followed by carry-forward.

    Args:
        operator_id: Who triggered the run (None for the scheduler)
        manual: Bypass the enabled flag; defaults to "operator_id was given"

    Returns:
        Run summary; only an unexpected failure yields success=False
        without per-row errors
    """
    if manual is None:
        manual = operator_id is not None
    executed_at = datetime.now(timezone.utc)
    registry = get_active_operations()

    try:
        async with registry.track(f"settlement-{uuid4().hex[:8]}", "job", "account statement settlement"):
            return await _run_settlement(operator_id, manual, executed_at)
    except ShutdownInProgressError as e:
        return _failed(executed_at, "SHUTDOWN", e.message)
    except SettlementError as e:
        logger.error(f"Settlement aborted: {e.message} {e.details}")
        return _failed(executed_at, "JOB_ERROR", e.message)
    except Exception as e:
        logger.error(f"Settlement aborted by unexpected error: {e}")
        return _failed(executed_at, "JOB_ERROR", str(e))


async def trigger_manual(operator_id: str) -> SettlementRunResult:
    """Operator-initiated run; proceeds even if settlement is disabled."""
    if not operator_id:
        raise ValueError("operator_id is required for a manual settlement")
    return await execute_settlement(operator_id, manual=True)


async def trigger_scheduled() -> SettlementRunResult:
    """Scheduler-initiated run; settled_by stays empty."""
    return await execute_settlement(None, manual=False)
