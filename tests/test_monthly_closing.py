from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lotto_ledger.db_types import NIL_UUID
from lotto_ledger.jobs.monthly_closing_job import execute_monthly_closing
from lotto_ledger.models import Dimension, MonthlyClosingBalance
from lotto_ledger.schemas.monthly_closing import EntityRefs, MonthBalance
from lotto_ledger.services.monthly_closing_service import (
    MonthlyClosingError,
    MonthlyClosingService,
    recalculate_monthly_closing_for_dimension,
)

from tests.helpers import (
    make_bet_line, make_draw, make_hierarchy, make_payment, make_statement, make_ticket,
)

MONTH = "2026-09"
IN_MONTH = date(2026, 9, 14)


@pytest.fixture
async def network(db):
    """One bank/window/seller with a month of activity."""
    bank, window, (seller,) = make_hierarchy()
    db.add_all([bank, window, seller])
    await db.flush()

    evaluated = make_draw("EVALUATED")
    pending = make_draw("OPEN")
    db.add_all([evaluated, pending])
    await db.flush()

    counted = make_ticket(evaluated, bank, window, seller, IN_MONTH, payout="40.00")
    db.add_all([
        counted,
        # Excluded tickets
        make_ticket(pending, bank, window, seller, IN_MONTH, payout="500"),
        make_ticket(evaluated, bank, window, seller, date(2026, 10, 1), payout="500"),
        make_ticket(evaluated, bank, window, seller, IN_MONTH, payout="500", status="CANCELLED"),
        make_ticket(evaluated, bank, window, seller, IN_MONTH, payout="500", is_active=False),
    ])
    await db.flush()

    db.add_all([
        make_bet_line(counted, "100.00", commission="12.00", origin="SELLER"),
        make_bet_line(counted, "50.00", commission="6.00", origin="SELLER"),
        make_bet_line(counted, "20.00", commission="1.00", origin="WINDOW"),
        make_bet_line(counted, "30.00", commission="3.00", origin="SELLER", is_excluded=True),
    ])

    seller_row = make_statement(
        "seller", seller.id, IN_MONTH, bank_id=bank.id, window_id=window.id, seller_id=seller.id
    )
    window_row = make_statement("window", window.id, IN_MONTH, bank_id=bank.id, window_id=window.id)
    db.add_all([seller_row, window_row])
    await db.flush()
    db.add_all([
        make_payment(seller_row, "payment", "20.00"),
        make_payment(seller_row, "collection", "70.00"),
        make_payment(seller_row, "collection", "999.00", is_reversed=True),
        make_payment(seller_row, "payment", "5.00", payment_date=date(2026, 8, 31)),
        make_payment(window_row, "collection", "300.00"),
    ])
    await db.commit()
    return bank, window, seller


async def test_seller_month_balance(db, network):
    bank, window, seller = network
    refs = EntityRefs(bank_id=bank.id, window_id=window.id, seller_id=seller.id)

    balance = await MonthlyClosingService(db).calculate_month_balance(MONTH, Dimension.SELLER, refs)

    assert balance.total_sales == Decimal("170.00")
    assert balance.total_payouts == Decimal("40.00")
    assert balance.total_commission == Decimal("18.00")
    assert balance.total_paid == Decimal("20.00")
    assert balance.total_collected == Decimal("70.00")
    assert balance.ticket_count == 1
    # 170 - 40 - 18 - 70 + 20
    assert balance.closing_balance == Decimal("62.00")


async def test_window_commission_and_payment_scoping(db, network):
    bank, window, _ = network

    balance = await MonthlyClosingService(db).calculate_month_balance(
        MONTH, Dimension.WINDOW, EntityRefs(bank_id=bank.id, window_id=window.id)
    )

    assert balance.total_commission == Decimal("1.00")
    # Seller payments do not belong to the window
    assert balance.total_paid == Decimal("0")
    assert balance.total_collected == Decimal("300.00")
    assert balance.closing_balance == Decimal("170.00") - Decimal("40.00") - Decimal("1.00") - Decimal("300.00")


async def test_save_is_an_upsert(db, session_factory):
    service = MonthlyClosingService(db)
    refs = EntityRefs(seller_id=uuid4())

    await service.save_monthly_closing_balance(MONTH, Dimension.SELLER, refs, MonthBalance(closing_balance=Decimal("10")))
    await service.save_monthly_closing_balance(MONTH, Dimension.SELLER, refs, MonthBalance(closing_balance=Decimal("25.50")))
    await db.commit()

    async with session_factory() as session:
        rows = (await session.execute(select(MonthlyClosingBalance))).scalars().all()
    assert len(rows) == 1
    assert rows[0].entity_id == refs.seller_id
    assert rows[0].closing_balance == Decimal("25.50")


async def test_unresolved_entity_is_keyed_by_nil_uuid(db, session_factory):
    service = MonthlyClosingService(db)

    await service.save_monthly_closing_balance(MONTH, Dimension.WINDOW, EntityRefs(), MonthBalance())
    await service.save_monthly_closing_balance(MONTH, Dimension.WINDOW, EntityRefs(), MonthBalance(ticket_count=3))
    await db.commit()

    async with session_factory() as session:
        rows = (await session.execute(select(MonthlyClosingBalance))).scalars().all()
    assert len(rows) == 1
    assert rows[0].entity_id == NIL_UUID
    assert rows[0].ticket_count == 3


async def test_process_dimension_pages_through_entities(db, session_factory):
    bank, window, sellers = make_hierarchy(sellers=3)
    db.add_all([bank, window, *sellers])
    await db.commit()

    counts = await MonthlyClosingService(db).process_dimension(MONTH, Dimension.SELLER, batch_size=2)

    assert counts.success == 3
    assert counts.errors == 0
    async with session_factory() as session:
        rows = (await session.execute(select(MonthlyClosingBalance))).scalars().all()
    assert {row.entity_id for row in rows} == {s.id for s in sellers}


async def test_execute_monthly_closing_defaults_to_previous_month(network, session_factory, today):
    bank, window, seller = network

    result = await execute_monthly_closing(operator_id="ops-1")

    assert result.success is True
    assert result.closing_month == MONTH
    assert result.per_dimension_counts["seller"].success == 1
    assert result.per_dimension_counts["window"].success == 1
    assert result.per_dimension_counts["bank"].success == 1

    async with session_factory() as session:
        stored = (await session.execute(
            select(MonthlyClosingBalance).where(MonthlyClosingBalance.entity_id == seller.id)
        )).scalar_one()
    assert stored.closing_balance == Decimal("62.00")


async def test_execute_monthly_closing_rejects_bad_month():
    with pytest.raises(ValueError):
        await execute_monthly_closing(explicit_month="2026-13")


async def test_recalculation_swallows_errors(session_factory, caplog):
    await recalculate_monthly_closing_for_dimension("bad-month", Dimension.SELLER, EntityRefs(seller_id=uuid4()))

    assert "recalculation failed" in caplog.text


async def test_recalculation_writes_single_entity(network, session_factory):
    bank, window, seller = network

    await recalculate_monthly_closing_for_dimension(
        MONTH, Dimension.SELLER, EntityRefs(bank_id=bank.id, window_id=window.id, seller_id=seller.id)
    )

    async with session_factory() as session:
        stored = (await session.execute(select(MonthlyClosingBalance))).scalar_one()
    assert stored.dimension == "seller"
    assert stored.closing_balance == Decimal("62.00")


async def test_ticket_without_counted_lines_is_not_counted(db, network):
    bank, window, seller = network
    draw = make_draw("EVALUATED")
    db.add(draw)
    await db.flush()
    voided = make_ticket(draw, bank, window, seller, IN_MONTH)
    db.add(voided)
    await db.flush()
    db.add(make_bet_line(voided, "80.00", commission="8.00", origin="SELLER", is_excluded=True))
    await db.commit()

    balance = await MonthlyClosingService(db).calculate_month_balance(
        MONTH, Dimension.SELLER, EntityRefs(bank_id=bank.id, window_id=window.id, seller_id=seller.id)
    )

    assert balance.ticket_count == 1
    assert balance.closing_balance == Decimal("62.00")


async def test_failing_entity_does_not_stop_dimension(db, session_factory, monkeypatch):
    bank, window, sellers = make_hierarchy(sellers=3)
    db.add_all([bank, window, *sellers])
    await db.commit()
    broken = sellers[0]

    original = MonthlyClosingService.recalculate

    async def recalculate_or_fail(self, closing_month, dimension, refs):
        if refs.seller_id == broken.id:
            raise RuntimeError("deadlock detected")
        return await original(self, closing_month, dimension, refs)

    monkeypatch.setattr(MonthlyClosingService, "recalculate", recalculate_or_fail)

    counts = await MonthlyClosingService(db).process_dimension(MONTH, Dimension.SELLER)

    assert counts.success == 2
    assert counts.errors == 1
    async with session_factory() as session:
        rows = (await session.execute(select(MonthlyClosingBalance))).scalars().all()
    assert {row.entity_id for row in rows} == {sellers[1].id, sellers[2].id}


async def test_page_commit_failure_reports_committed_counts(db, session_factory, monkeypatch):
    bank, window, sellers = make_hierarchy(sellers=3)
    db.add_all([bank, window, *sellers])
    await db.commit()

    real_commit = AsyncSession.commit
    commits = []

    async def commit_first_page_only(self):
        commits.append(1)
        if len(commits) > 1:
            raise RuntimeError("connection reset")
        await real_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", commit_first_page_only)

    with pytest.raises(MonthlyClosingError) as exc_info:
        await MonthlyClosingService(db).process_dimension(MONTH, Dimension.SELLER, batch_size=2)

    assert exc_info.value.details["success"] == 2
    assert exc_info.value.details["errors"] == 1
    async with session_factory() as session:
        rows = (await session.execute(select(MonthlyClosingBalance))).scalars().all()
    assert len(rows) == 2


async def test_aborted_dimension_keeps_partial_counts(network, session_factory, monkeypatch):
    original = MonthlyClosingService.process_dimension

    async def abort_sellers(self, closing_month, dimension, batch_size=None):
        if dimension == Dimension.SELLER:
            raise MonthlyClosingError("Failed to commit seller page", {"success": 200, "errors": 100})
        return await original(self, closing_month, dimension, batch_size)

    monkeypatch.setattr(MonthlyClosingService, "process_dimension", abort_sellers)

    result = await execute_monthly_closing(explicit_month=MONTH)

    assert result.success is False
    assert result.per_dimension_counts["seller"].success == 200
    assert result.per_dimension_counts["seller"].errors == 100
    assert result.per_dimension_counts["window"].success == 1
