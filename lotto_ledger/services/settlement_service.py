"""
Account Statement Settlement Service

Freezes daily statement rows once they are old enough:
- Eligible: statement_date < cutoff_date AND is_settled = false
- Oldest date first, at most SETTLEMENT_MAX_BATCH_SIZE rows per call
- Per row: total_paid / total_collected are recomputed from non-reversed
  payments, then the row is flipped to is_settled=true, can_edit=false

remaining_balance and accumulated_balance are NOT touched. Accrual already
folded every payment into them; recomputing here would count payments twice.

The flip is a guarded UPDATE (WHERE is_settled = false), so a row settled by
an overlapping run in the meantime is reported as skipped.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from lotto_ledger.config import settings
from lotto_ledger.db_types import CENTS, ZERO
from lotto_ledger.models.account_statement import AccountStatement, AccountPayment, PaymentType, parse_payment_type
from lotto_ledger.schemas.settlement import SettlementBatchResult, StatementError

logger = logging.getLogger(__name__)


class SettlementError(Exception):
    """Custom exception for settlement errors."""
    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS)


class SettlementService:
    """Settles eligible account statements in bounded batches."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def effective_batch_size(requested: int) -> int:
        """Hard cap, applied whatever the stored config says."""
        if requested is None or requested <= 0:
            raise ValueError(f"Invalid batch size: {requested}")
        if requested > settings.SETTLEMENT_MAX_BATCH_SIZE:
            logger.warning(
                f"Requested batch size {requested} exceeds maximum, "
                f"capping to {settings.SETTLEMENT_MAX_BATCH_SIZE}"
            )
            return settings.SETTLEMENT_MAX_BATCH_SIZE
        return requested

    @staticmethod
    def _eligible(cutoff_date: date):
        return and_(
            AccountStatement.statement_date < cutoff_date,
            AccountStatement.is_settled == False,  # noqa: E712
        )

    async def fetch_eligible(self, cutoff_date: date, limit: int) -> List[Tuple[UUID, date]]:
        """(id, statement_date) of eligible rows, oldest first."""
        result = await self.db.execute(
            select(AccountStatement.id, AccountStatement.statement_date)
            .where(self._eligible(cutoff_date))
            .order_by(AccountStatement.statement_date, AccountStatement.id)
            .limit(limit)
        )
        return [(row.id, row.statement_date) for row in result.all()]

    async def count_eligible(self, cutoff_date: date) -> int:
        result = await self.db.execute(
            select(func.count(AccountStatement.id)).where(self._eligible(cutoff_date))
        )
        return result.scalar() or 0

    async def payment_totals(self, statement_ids: List[UUID]) -> Dict[UUID, Dict[str, Decimal]]:
        """Non-reversed payment and collection sums per statement, one grouped query."""
        totals: Dict[UUID, Dict[str, Decimal]] = {}
        if not statement_ids:
            return totals

        result = await self.db.execute(
            select(
                AccountPayment.account_statement_id,
                AccountPayment.type,
                func.coalesce(func.sum(AccountPayment.amount), 0),
            )
            .where(
                AccountPayment.account_statement_id.in_(statement_ids),
                AccountPayment.is_reversed == False,  # noqa: E712
            )
            .group_by(AccountPayment.account_statement_id, AccountPayment.type)
        )
        for statement_id, payment_type, amount in result.all():
            entry = totals.setdefault(statement_id, {"paid": ZERO, "collected": ZERO})
            kind = parse_payment_type(payment_type)
            if kind == PaymentType.PAYMENT:
                entry["paid"] += _money(amount)
            elif kind == PaymentType.COLLECTION:
                entry["collected"] += _money(amount)
            else:
                logger.warning(
                    f"Statement {statement_id}: ignoring {_money(amount)} of unknown payment type '{payment_type}'"
                )
        return totals

    async def settle_statement(
        self,
        statement_id: UUID,
        total_paid: Decimal,
        total_collected: Decimal,
        settled_by: Optional[str],
        settled_at: datetime,
    ) -> bool:
        """
        Flip one row to settled.

        Returns:
            False if the row was already settled by someone else
        """
        result = await self.db.execute(
            update(AccountStatement)
            .where(
                AccountStatement.id == statement_id,
                AccountStatement.is_settled == False,  # noqa: E712
            )
            .values(
                total_paid=total_paid,
                total_collected=total_collected,
                is_settled=True,
                can_edit=False,
                settled_at=settled_at,
                settled_by=settled_by,
                updated_at=settled_at,
            )
        )
        return result.rowcount == 1

    async def execute_settlement_batch(
        self,
        cutoff_date: date,
        batch_size: int,
        settled_by: Optional[str] = None,
    ) -> SettlementBatchResult:
        """
        Settle up to batch_size eligible rows dated before cutoff_date.

        Rows are processed sequentially, each inside a SAVEPOINT; a failing
        row is logged and counted, the batch continues. The caller commits.
        """
        limit = self.effective_batch_size(batch_size)
        batch = SettlementBatchResult()

        candidates = await self.fetch_eligible(cutoff_date, limit)
        if not candidates:
            logger.info(f"No statements to settle before {cutoff_date}")
            return batch

        logger.info(f"Settling {len(candidates)} statements dated before {cutoff_date} (limit {limit})")
        totals = await self.payment_totals([statement_id for statement_id, _ in candidates])
        settled_at = datetime.now(timezone.utc)

        for statement_id, statement_date in candidates:
            batch.processed_count += 1
            paid = totals.get(statement_id, {}).get("paid", ZERO)
            collected = totals.get(statement_id, {}).get("collected", ZERO)
            try:
                async with self.db.begin_nested():
                    settled = await self.settle_statement(
                        statement_id, paid, collected, settled_by, settled_at
                    )
            except Exception as e:
                logger.error(f"Failed to settle statement {statement_id} ({statement_date}): {e}")
                batch.errors.append(StatementError(statement_id=str(statement_id), error=str(e)))
                continue

            if settled:
                batch.settled_count += 1
                logger.debug(f"Settled statement {statement_id} ({statement_date})")
            else:
                batch.skipped_count += 1
                logger.info(f"Statement {statement_id} already settled, skipped")

        if len(candidates) == limit:
            backlog = await self.count_eligible(cutoff_date)
            batch.more_pending = backlog > 0
            if backlog:
                logger.info(f"Settlement backlog: {backlog} eligible statements remain for the next run")

        logger.info(
            f"Settlement batch done: {batch.settled_count} settled, "
            f"{batch.skipped_count} skipped, {batch.error_count} errors"
        )
        return batch


async def execute_settlement_batch(
    db: AsyncSession,
    cutoff_date: date,
    batch_size: int,
    settled_by: Optional[str] = None,
) -> SettlementBatchResult:
    """Shared core of manual and scheduled settlement runs."""
    return await SettlementService(db).execute_settlement_batch(cutoff_date, batch_size, settled_by)
