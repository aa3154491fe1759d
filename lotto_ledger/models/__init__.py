# Models module
from lotto_ledger.models.hierarchy import Bank, Window, Seller, Dimension
from lotto_ledger.models.ticket import (
    Draw, Ticket, BetLine,
    BetType, CommissionOrigin, DrawStatus, TicketStatus,
)
from lotto_ledger.models.account_statement import AccountStatement, AccountPayment, PaymentType
from lotto_ledger.models.monthly_closing import MonthlyClosingBalance
from lotto_ledger.models.settlement_config import SettlementConfig

__all__ = [
    # Hierarchy
    "Bank",
    "Window",
    "Seller",
    "Dimension",
    # Sales source tables
    "Draw",
    "Ticket",
    "BetLine",
    "BetType",
    "CommissionOrigin",
    "DrawStatus",
    "TicketStatus",
    # Ledger
    "AccountStatement",
    "AccountPayment",
    "PaymentType",
    "MonthlyClosingBalance",
    "SettlementConfig",
]
