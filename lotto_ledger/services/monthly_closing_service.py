"""
Monthly Closing Service

Recomputes a completed month's balance per entity straight from the ticket,
bet line and payment tables, without trusting the daily statement chain:

    closing = sales - payouts - commission - collected + paid

- sales: non-excluded, non-deleted bet line amounts
- payouts: ticket total_payout
- commission: bet line commission_amount whose origin matches the entity's
  role (seller -> SELLER, window -> WINDOW, bank -> BANK)
- paid / collected: non-reversed payments dated in the month

Tickets count when not deleted, active, not cancelled, their draw is
EVALUATED and their business_date falls in the month.

Results are written with one INSERT .. ON CONFLICT DO UPDATE on
(closing_month, dimension, entity_id); an unresolved entity is keyed by
NIL_UUID.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from lotto_ledger import database
from lotto_ledger.config import settings
from lotto_ledger.core.business_date import month_bounds
from lotto_ledger.db_types import CENTS, NIL_UUID, ZERO
from lotto_ledger.models.account_statement import AccountPayment, PaymentType, parse_payment_type
from lotto_ledger.models.hierarchy import Dimension
from lotto_ledger.models.monthly_closing import MonthlyClosingBalance
from lotto_ledger.models.ticket import Ticket, BetLine, Draw, CommissionOrigin, DrawStatus, TicketStatus
from lotto_ledger.schemas.monthly_closing import EntityRefs, MonthBalance, DimensionCount
from lotto_ledger.services.carry_forward_service import dialect_insert
from lotto_ledger.services.directory_service import DirectoryService

logger = logging.getLogger(__name__)


ROLE_ORIGIN = {
    Dimension.SELLER: CommissionOrigin.SELLER,
    Dimension.WINDOW: CommissionOrigin.WINDOW,
    Dimension.BANK: CommissionOrigin.BANK,
}

CLOSING_KEY = ["closing_month", "dimension", "entity_id"]


class MonthlyClosingError(Exception):
    """Custom exception for monthly closing errors."""
    def __init__(self, message: str, details: Dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def own_entity_id(dimension: Dimension, refs: EntityRefs):
    """The reference naming the entity itself for this dimension (may be None)."""
    if dimension == Dimension.SELLER:
        return refs.seller_id
    if dimension == Dimension.WINDOW:
        return refs.window_id
    return refs.bank_id


class MonthlyClosingService:
    """Month recomputation and upsert for one entity or a whole dimension."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Scoping ====================

    @staticmethod
    def _ticket_scope(dimension: Dimension, refs: EntityRefs) -> list:
        """
        Filter tickets on the entity itself; when its own reference is
        unresolved, fall back to whatever parent references are known.
        """
        own_id = own_entity_id(dimension, refs)
        if own_id is not None:
            column = {
                Dimension.SELLER: Ticket.seller_id,
                Dimension.WINDOW: Ticket.window_id,
                Dimension.BANK: Ticket.bank_id,
            }[dimension]
            return [column == own_id]

        conditions = []
        if refs.window_id is not None:
            conditions.append(Ticket.window_id == refs.window_id)
        if refs.bank_id is not None:
            conditions.append(Ticket.bank_id == refs.bank_id)
        return conditions

    @staticmethod
    def _payment_scope(dimension: Dimension, refs: EntityRefs) -> list:
        """Seller payments by seller; window payments carry no seller; bank payments carry neither."""
        if dimension == Dimension.SELLER:
            conditions = [AccountPayment.seller_id.is_not(None)]
            if refs.seller_id is not None:
                conditions = [AccountPayment.seller_id == refs.seller_id]
            elif refs.window_id is not None:
                conditions.append(AccountPayment.window_id == refs.window_id)
            return conditions

        if dimension == Dimension.WINDOW:
            conditions = [AccountPayment.seller_id.is_(None), AccountPayment.window_id.is_not(None)]
            if refs.window_id is not None:
                conditions = [AccountPayment.window_id == refs.window_id, AccountPayment.seller_id.is_(None)]
            elif refs.bank_id is not None:
                conditions.append(AccountPayment.bank_id == refs.bank_id)
            return conditions

        conditions = [AccountPayment.window_id.is_(None), AccountPayment.seller_id.is_(None)]
        if refs.bank_id is not None:
            conditions.append(AccountPayment.bank_id == refs.bank_id)
        return conditions

    @staticmethod
    def _ticket_filters(first_day: date, last_day: date) -> list:
        return [
            Ticket.deleted_at.is_(None),
            Ticket.is_active == True,  # noqa: E712
            Ticket.status != TicketStatus.CANCELLED.value,
            Draw.status == DrawStatus.EVALUATED.value,
            Ticket.business_date >= first_day,
            Ticket.business_date <= last_day,
        ]

    # ==================== Computation ====================

    async def calculate_month_balance(
        self,
        closing_month: str,
        dimension: Dimension,
        refs: EntityRefs,
    ) -> MonthBalance:
        """Pure read: recompute one entity's month from source tables."""
        dimension = Dimension(dimension)
        first_day, last_day = month_bounds(closing_month)
        ticket_conditions = self._ticket_filters(first_day, last_day) + self._ticket_scope(dimension, refs)
        line_conditions = [
            BetLine.is_excluded == False,  # noqa: E712
            BetLine.deleted_at.is_(None),
        ]

        # Sales and ticket count (tickets with at least one counted line)
        result = await self.db.execute(
            select(func.coalesce(func.sum(BetLine.amount), 0), func.count(func.distinct(Ticket.id)))
            .select_from(BetLine)
            .join(Ticket, BetLine.ticket_id == Ticket.id)
            .join(Draw, Ticket.draw_id == Draw.id)
            .where(*ticket_conditions, *line_conditions)
        )
        sales, ticket_count = result.one()
        total_sales = _money(sales)

        # Payouts (ticket level)
        result = await self.db.execute(
            select(func.coalesce(func.sum(Ticket.total_payout), 0))
            .select_from(Ticket)
            .join(Draw, Ticket.draw_id == Draw.id)
            .where(*ticket_conditions)
        )
        total_payouts = _money(result.scalar())

        # Commission earned by this role
        result = await self.db.execute(
            select(func.coalesce(func.sum(BetLine.commission_amount), 0))
            .select_from(BetLine)
            .join(Ticket, BetLine.ticket_id == Ticket.id)
            .join(Draw, Ticket.draw_id == Draw.id)
            .where(
                *ticket_conditions,
                *line_conditions,
                BetLine.commission_origin == ROLE_ORIGIN[dimension].value,
            )
        )
        total_commission = _money(result.scalar())

        # Payments and collections
        result = await self.db.execute(
            select(AccountPayment.type, func.coalesce(func.sum(AccountPayment.amount), 0))
            .where(
                AccountPayment.is_reversed == False,  # noqa: E712
                AccountPayment.payment_date >= first_day,
                AccountPayment.payment_date <= last_day,
                *self._payment_scope(dimension, refs),
            )
            .group_by(AccountPayment.type)
        )
        total_paid = ZERO
        total_collected = ZERO
        for payment_type, amount in result.all():
            kind = parse_payment_type(payment_type)
            if kind == PaymentType.PAYMENT:
                total_paid += _money(amount)
            elif kind == PaymentType.COLLECTION:
                total_collected += _money(amount)
            else:
                logger.warning(
                    f"Monthly closing {closing_month} {dimension.value}: ignoring {_money(amount)} "
                    f"of unknown payment type '{payment_type}'"
                )

        closing_balance = _money(total_sales - total_payouts - total_commission - total_collected + total_paid)

        return MonthBalance(
            closing_balance=closing_balance,
            total_sales=total_sales,
            total_payouts=total_payouts,
            total_commission=total_commission,
            total_paid=total_paid,
            total_collected=total_collected,
            ticket_count=ticket_count or 0,
        )

    async def save_monthly_closing_balance(
        self,
        closing_month: str,
        dimension: Dimension,
        refs: EntityRefs,
        balance: MonthBalance,
    ) -> None:
        """Atomic upsert keyed by (closing_month, dimension, entity_id)."""
        dimension = Dimension(dimension)
        now = datetime.now(timezone.utc)
        entity_id = own_entity_id(dimension, refs) or NIL_UUID

        values = {
            "bank_id": refs.bank_id,
            "window_id": refs.window_id,
            "seller_id": refs.seller_id,
            "closing_balance": balance.closing_balance,
            "total_sales": balance.total_sales,
            "total_payouts": balance.total_payouts,
            "total_commission": balance.total_commission,
            "total_paid": balance.total_paid,
            "total_collected": balance.total_collected,
            "ticket_count": balance.ticket_count,
            "closing_date": now,
            "updated_at": now,
        }

        insert = dialect_insert(self.db)
        stmt = insert(MonthlyClosingBalance).values(
            id=uuid4(),
            closing_month=closing_month,
            dimension=dimension.value,
            entity_id=entity_id,
            created_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(index_elements=CLOSING_KEY, set_=values)
        await self.db.execute(stmt)

    async def recalculate(
        self,
        closing_month: str,
        dimension: Dimension,
        refs: EntityRefs,
    ) -> MonthBalance:
        balance = await self.calculate_month_balance(closing_month, dimension, refs)
        await self.save_monthly_closing_balance(closing_month, dimension, refs, balance)
        return balance

    # ==================== Batch ====================

    async def process_dimension(
        self,
        closing_month: str,
        dimension: Dimension,
        batch_size: Optional[int] = None,
    ) -> DimensionCount:
        """
        Close every active entity of a dimension, a page at a time.

        Each entity runs in its own SAVEPOINT; each page is committed.
        """
        dimension = Dimension(dimension)
        batch_size = batch_size or settings.MONTHLY_CLOSING_BATCH_SIZE
        directory = DirectoryService(self.db)
        counts = DimensionCount()
        offset = 0

        while True:
            page = await directory.list_active(dimension, offset=offset, limit=batch_size)
            if not page:
                break
            committed = counts.model_copy()

            for entity_id, refs in page:
                try:
                    async with self.db.begin_nested():
                        await self.recalculate(closing_month, dimension, refs)
                    counts.success += 1
                except Exception as e:
                    counts.errors += 1
                    logger.error(f"Monthly closing {closing_month} failed for {dimension.value} {entity_id}: {e}")

            try:
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                raise MonthlyClosingError(
                    f"Failed to commit {dimension.value} page for {closing_month}",
                    {
                        "offset": offset,
                        "page_size": len(page),
                        "error": str(e),
                        # Earlier pages are already committed; this whole page was rolled back
                        "success": committed.success,
                        "errors": committed.errors + len(page),
                    },
                )
            logger.info(
                f"Monthly closing {closing_month} {dimension.value}: page at offset {offset} done "
                f"({counts.success} ok, {counts.errors} errors so far)"
            )

            if len(page) < batch_size:
                break
            offset += batch_size

        return counts


async def calculate_month_balance(
    db: AsyncSession, closing_month: str, dimension: Dimension, refs: EntityRefs
) -> MonthBalance:
    return await MonthlyClosingService(db).calculate_month_balance(closing_month, dimension, refs)


async def save_monthly_closing_balance(
    db: AsyncSession, closing_month: str, dimension: Dimension, refs: EntityRefs, balance: MonthBalance
) -> None:
    await MonthlyClosingService(db).save_monthly_closing_balance(closing_month, dimension, refs, balance)


async def recalculate_monthly_closing_for_dimension(
    closing_month: str,
    dimension: Dimension,
    refs: EntityRefs,
) -> None:
    """
    Post-closing correction for one (month, dimension, entity).

    Runs in its own session so it never touches the caller's transaction.
    Errors are logged and swallowed. Does not reopen account statements.
    """
    try:
        async with database.async_session_factory() as db:
            balance = await MonthlyClosingService(db).recalculate(closing_month, dimension, refs)
            await db.commit()
        logger.info(
            f"Recalculated monthly closing {closing_month} {Dimension(dimension).value} "
            f"{own_entity_id(Dimension(dimension), refs) or NIL_UUID}: closing={balance.closing_balance}"
        )
    except Exception as e:
        logger.error(
            f"Monthly closing recalculation failed for {closing_month} {dimension} "
            f"(refs={refs.model_dump()}): {e}"
        )
