"""Initialize database tables (development; production uses alembic)."""
import asyncio
import logging

from lotto_ledger.database import init_db

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


if __name__ == "__main__":
    asyncio.run(init_db())
