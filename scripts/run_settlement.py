"""
Run account settlement + carry-forward once.

Usage:
    python scripts/run_settlement.py                 # as the scheduler would (respects enabled flag)
    python scripts/run_settlement.py --operator ops1 # manual run, bypasses the enabled flag
"""
import argparse
import asyncio
import json
import logging
import sys

from lotto_ledger.jobs.settlement_job import trigger_manual, trigger_scheduled

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


async def main(operator_id: str = None) -> int:
    if operator_id:
        result = await trigger_manual(operator_id)
    else:
        result = await trigger_scheduled()
    print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Settle old account statements and carry balances forward")
    parser.add_argument("--operator", dest="operator_id", help="Operator id for a manual run")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.operator_id)))
