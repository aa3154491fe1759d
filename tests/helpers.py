"""Row builders shared by the database tests."""
from datetime import date, datetime, timezone
from decimal import Decimal
from itertools import count
from typing import Optional
from uuid import uuid4

from lotto_ledger.core.business_date import month_key
from lotto_ledger.models import (
    AccountPayment, AccountStatement, Bank, BetLine, Draw, Seller, Ticket, Window,
)

_codes = count(1)


def make_hierarchy(policy_bank=None, policy_window=None, policy_seller=None, sellers: int = 1):
    """Bank -> window -> seller(s), not yet added to a session."""
    n = next(_codes)
    bank = Bank(id=uuid4(), code=f"B{n}", name=f"Bank {n}", is_active=True, commission_policy=policy_bank)
    window = Window(
        id=uuid4(), bank_id=bank.id, code=f"W{n}", name=f"Window {n}",
        is_active=True, commission_policy=policy_window,
    )
    seller_rows = [
        Seller(
            id=uuid4(), window_id=window.id, code=f"S{n}-{i}", name=f"Seller {n}-{i}",
            is_active=True, commission_policy=policy_seller,
        )
        for i in range(sellers)
    ]
    return bank, window, seller_rows


def make_statement(
    dimension: str,
    entity_id,
    statement_date: date,
    remaining_balance: Decimal = Decimal("0"),
    accumulated_balance: Optional[Decimal] = None,
    bank_id=None,
    window_id=None,
    seller_id=None,
    **fields,
) -> AccountStatement:
    return AccountStatement(
        id=uuid4(),
        statement_date=statement_date,
        month=month_key(statement_date),
        dimension=dimension,
        entity_id=entity_id,
        bank_id=bank_id,
        window_id=window_id,
        seller_id=seller_id,
        remaining_balance=remaining_balance,
        accumulated_balance=remaining_balance if accumulated_balance is None else accumulated_balance,
        is_settled=fields.pop("is_settled", False),
        can_edit=fields.pop("can_edit", True),
        **fields,
    )


def make_payment(statement: AccountStatement, payment_type: str, amount: str, **fields) -> AccountPayment:
    return AccountPayment(
        id=uuid4(),
        account_statement_id=statement.id,
        payment_date=fields.pop("payment_date", statement.statement_date),
        dimension=statement.dimension,
        entity_id=statement.entity_id,
        bank_id=fields.pop("bank_id", statement.bank_id),
        window_id=fields.pop("window_id", statement.window_id),
        seller_id=fields.pop("seller_id", statement.seller_id),
        type=payment_type,
        amount=Decimal(amount),
        **fields,
    )


def make_draw(status: str = "EVALUATED") -> Draw:
    return Draw(
        id=uuid4(),
        lottery_id=uuid4(),
        scheduled_at=datetime(2026, 9, 15, 18, 0, tzinfo=timezone.utc),
        status=status,
    )


def make_ticket(draw: Draw, bank, window, seller, business_date: date, payout: str = "0", **fields) -> Ticket:
    return Ticket(
        id=uuid4(),
        draw_id=draw.id,
        lottery_id=draw.lottery_id,
        bank_id=bank.id,
        window_id=window.id,
        seller_id=seller.id if seller is not None else None,
        business_date=business_date,
        status=fields.pop("status", "EVALUATED"),
        is_active=fields.pop("is_active", True),
        total_payout=Decimal(payout),
        **fields,
    )


def make_bet_line(ticket: Ticket, amount: str, commission: str = "0", origin: Optional[str] = None, **fields) -> BetLine:
    return BetLine(
        id=uuid4(),
        ticket_id=ticket.id,
        bet_type=fields.pop("bet_type", "NUMERO"),
        number=fields.pop("number", "07"),
        amount=Decimal(amount),
        commission_amount=Decimal(commission),
        commission_origin=origin,
        **fields,
    )
