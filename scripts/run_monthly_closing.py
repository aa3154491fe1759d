"""
Run monthly closing once.

Usage:
    python scripts/run_monthly_closing.py                   # previous month
    python scripts/run_monthly_closing.py --month 2026-08   # backfill
"""
import argparse
import asyncio
import json
import logging
import sys

from lotto_ledger.jobs.monthly_closing_job import execute_monthly_closing

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


async def main(month: str = None, operator_id: str = None) -> int:
    result = await execute_monthly_closing(operator_id=operator_id, explicit_month=month)
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recompute monthly closing balances")
    parser.add_argument("--month", help="Month to close (YYYY-MM), default previous month")
    parser.add_argument("--operator", dest="operator_id", help="Operator id, for the log")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.month, args.operator_id)))
