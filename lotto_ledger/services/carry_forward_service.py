"""
Balance carry-forward.

Runs right after settlement. Every active entity whose last known statement
holds a nonzero remaining_balance gets a zero-activity row for today, so the
statement chain of an entity with money outstanding never has a date gap.

One "latest prior row per entity" query per dimension keeps round trips at
O(dimensions), independent of how many days an entity was idle.
"""
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set
from uuid import UUID, uuid4

from sqlalchemy import select, func, and_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from lotto_ledger.core.business_date import today_business_date, month_key
from lotto_ledger.db_types import ZERO
from lotto_ledger.models.account_statement import AccountStatement
from lotto_ledger.models.hierarchy import Dimension
from lotto_ledger.schemas.monthly_closing import EntityRefs
from lotto_ledger.schemas.settlement import CarryForwardSummary
from lotto_ledger.services.directory_service import DirectoryService

logger = logging.getLogger(__name__)

# Rows per INSERT statement; keeps SQLite under its bound-parameter limit
INSERT_CHUNK_SIZE = 500

STATEMENT_KEY = ["statement_date", "dimension", "entity_id"]


def dialect_insert(db: AsyncSession):
    """INSERT construct with ON CONFLICT support for the bound dialect."""
    if db.bind.dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


class CarryForwardService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.directory = DirectoryService(db)

    async def existing_entity_ids(self, dimension: Dimension, target_date: date) -> Set[UUID]:
        result = await self.db.execute(
            select(AccountStatement.entity_id).where(
                AccountStatement.dimension == dimension.value,
                AccountStatement.statement_date == target_date,
            )
        )
        return set(result.scalars().all())

    async def latest_prior_statements(
        self, dimension: Dimension, target_date: date
    ) -> Dict[UUID, AccountStatement]:
        """Most recent row strictly before target_date, per entity."""
        latest = (
            select(
                AccountStatement.entity_id,
                func.max(AccountStatement.statement_date).label("last_date"),
            )
            .where(
                AccountStatement.dimension == dimension.value,
                AccountStatement.statement_date < target_date,
            )
            .group_by(AccountStatement.entity_id)
            .subquery()
        )
        result = await self.db.execute(
            select(AccountStatement)
            .join(
                latest,
                and_(
                    AccountStatement.entity_id == latest.c.entity_id,
                    AccountStatement.statement_date == latest.c.last_date,
                ),
            )
            .where(AccountStatement.dimension == dimension.value)
        )
        return {row.entity_id: row for row in result.scalars().all()}

    @staticmethod
    def build_carry_row(
        dimension: Dimension,
        entity_id: UUID,
        refs: EntityRefs,
        prior: AccountStatement,
        target_date: date,
        now: datetime,
    ) -> dict:
        """Zero-activity row carrying the prior balances forward."""
        return {
            "id": uuid4(),
            "statement_date": target_date,
            "month": month_key(target_date),
            "dimension": dimension.value,
            "entity_id": entity_id,
            "bank_id": refs.bank_id or prior.bank_id,
            "window_id": refs.window_id or prior.window_id,
            "seller_id": refs.seller_id or prior.seller_id,
            "ticket_count": 0,
            "total_sales": ZERO,
            "total_payouts": ZERO,
            "seller_commission": ZERO,
            "window_commission": ZERO,
            "balance": ZERO,
            "total_paid": ZERO,
            "total_collected": ZERO,
            "remaining_balance": prior.remaining_balance,
            "accumulated_balance": prior.accumulated_balance,
            "is_settled": False,
            "can_edit": True,
            "settled_at": None,
            "settled_by": None,
            "created_at": now,
            "updated_at": now,
        }

    async def _insert_rows(self, rows: List[dict], summary: CarryForwardSummary) -> None:
        """
        Insert with ON CONFLICT DO NOTHING so a re-run (or a concurrent
        accrual) never duplicates a (day, entity) row. A failing chunk is
        retried row by row to isolate the bad one.
        """
        insert = dialect_insert(self.db)

        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = rows[start:start + INSERT_CHUNK_SIZE]
            try:
                async with self.db.begin_nested():
                    result = await self.db.execute(
                        insert(AccountStatement).values(chunk).on_conflict_do_nothing(
                            index_elements=STATEMENT_KEY
                        )
                    )
                inserted = result.rowcount
                summary.created_count += inserted
                summary.skipped_count += len(chunk) - inserted
                continue
            except Exception as e:
                logger.warning(f"Bulk carry-forward insert of {len(chunk)} rows failed, retrying per row: {e}")

            for row in chunk:
                try:
                    async with self.db.begin_nested():
                        result = await self.db.execute(
                            insert(AccountStatement).values(row).on_conflict_do_nothing(
                                index_elements=STATEMENT_KEY
                            )
                        )
                    if result.rowcount:
                        summary.created_count += 1
                    else:
                        summary.skipped_count += 1
                except Exception as e:
                    summary.error_count += 1
                    logger.error(
                        f"Failed to carry forward {row['dimension']}:{row['entity_id']} "
                        f"to {row['statement_date']}: {e}"
                    )

    async def carry_forward_dimension(
        self,
        dimension: Dimension,
        target_date: date,
        summary: CarryForwardSummary,
    ) -> None:
        entities = await self.directory.list_active(dimension)
        if not entities:
            return

        existing = await self.existing_entity_ids(dimension, target_date)
        prior_rows = await self.latest_prior_statements(dimension, target_date)
        now = datetime.now(timezone.utc)

        rows = []
        for entity_id, refs in entities:
            if entity_id in existing:
                summary.skipped_count += 1
                continue
            prior = prior_rows.get(entity_id)
            # No history, or nothing outstanding: no continuation needed
            if prior is None or prior.remaining_balance == 0:
                continue
            rows.append(self.build_carry_row(dimension, entity_id, refs, prior, target_date, now))

        logger.info(
            f"Carry-forward {dimension.value}: {len(entities)} active, "
            f"{len(existing)} with activity today, {len(rows)} to carry"
        )
        if rows:
            await self._insert_rows(rows, summary)

    async def carry_forward_balances(self, target_date: Optional[date] = None) -> CarryForwardSummary:
        """
        Create today's continuation rows for every dimension.

        Returns counts only; never raises for a single failing row.
        The caller commits.
        """
        target_date = target_date or today_business_date()
        summary = CarryForwardSummary()

        for dimension in (Dimension.SELLER, Dimension.WINDOW, Dimension.BANK):
            await self.carry_forward_dimension(dimension, target_date, summary)

        logger.info(
            f"Carry-forward to {target_date} done: {summary.created_count} created, "
            f"{summary.skipped_count} skipped, {summary.error_count} errors"
        )
        return summary


async def carry_forward_balances(db: AsyncSession, target_date: Optional[date] = None) -> CarryForwardSummary:
    return await CarryForwardService(db).carry_forward_balances(target_date)
