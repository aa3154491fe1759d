"""
Monthly closing job.

Closes the previous calendar month (or an explicit YYYY-MM for backfill)
for every active seller, window and bank.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from lotto_ledger import database
from lotto_ledger.core.active_operations import get_active_operations, ShutdownInProgressError
from lotto_ledger.core.business_date import today_business_date, previous_month, validate_month
from lotto_ledger.core.connection_warmup import warmup_connection
from lotto_ledger.models.hierarchy import Dimension
from lotto_ledger.schemas.monthly_closing import DimensionCount, MonthlyClosingResult
from lotto_ledger.services.monthly_closing_service import MonthlyClosingService, MonthlyClosingError

logger = logging.getLogger(__name__)


async def execute_monthly_closing(
    operator_id: Optional[str] = None,
    explicit_month: Optional[str] = None,
) -> MonthlyClosingResult:
    """
    Recompute and store closing balances for a whole month.

    Raises:
        ValueError: explicit_month is not YYYY-MM
    """
    closing_month = validate_month(explicit_month) if explicit_month else previous_month(today_business_date())
    executed_at = datetime.now(timezone.utc)
    result = MonthlyClosingResult(success=False, closing_month=closing_month, executed_at=executed_at)

    registry = get_active_operations()
    try:
        async with registry.track(f"monthly-closing-{uuid4().hex[:8]}", "job", f"monthly closing {closing_month}"):
            if not await warmup_connection(context="monthly-closing"):
                logger.error(f"Monthly closing {closing_month} skipped: database connection could not be established")
                return result

            logger.info(f"Monthly closing {closing_month} started by {operator_id or 'scheduler'}")
            for dimension in (Dimension.SELLER, Dimension.WINDOW, Dimension.BANK):
                try:
                    async with database.async_session_factory() as db:
                        counts = await MonthlyClosingService(db).process_dimension(closing_month, dimension)
                except MonthlyClosingError as e:
                    logger.error(f"Monthly closing {closing_month} {dimension.value} aborted: {e.message} {e.details}")
                    counts = DimensionCount(
                        success=e.details.get("success", 0),
                        errors=max(e.details.get("errors", 0), 1),
                    )
                except Exception as e:
                    logger.error(f"Monthly closing {closing_month} {dimension.value} aborted: {e}")
                    counts = DimensionCount(errors=1)
                result.per_dimension_counts[dimension.value] = counts
    except ShutdownInProgressError as e:
        logger.warning(f"Monthly closing {closing_month} not started: {e.message}")
        return result

    result.success = all(counts.errors == 0 for counts in result.per_dimension_counts.values())
    logger.info(
        f"Monthly closing {closing_month} finished: success={result.success}, "
        + ", ".join(f"{dim}={c.success} ok/{c.errors} errors" for dim, c in result.per_dimension_counts.items())
    )
    return result
