# Background jobs
from lotto_ledger.jobs.settlement_job import execute_settlement, trigger_manual, trigger_scheduled
from lotto_ledger.jobs.monthly_closing_job import execute_monthly_closing

__all__ = [
    "execute_settlement",
    "trigger_manual",
    "trigger_scheduled",
    "execute_monthly_closing",
]
