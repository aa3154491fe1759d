import os

# Settings are read at import time; point them at SQLite before anything imports lotto_ledger
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("WARMUP_BASE_DELAY_SECONDS", "0")

from datetime import date

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lotto_ledger import database
from lotto_ledger import models  # noqa: F401
from lotto_ledger.core import active_operations
from lotto_ledger.database import Base
from lotto_ledger.services.commission import resolver

TODAY = date(2026, 10, 18)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINTs nest properly
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "async_session_factory", factory)
    return factory


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def fresh_globals(monkeypatch):
    monkeypatch.setattr(active_operations, "_registry", None)
    monkeypatch.setattr(resolver, "_resolver", None)


@pytest.fixture
def today(monkeypatch) -> date:
    """Freeze the operating-timezone business date used by the jobs."""
    monkeypatch.setattr("lotto_ledger.jobs.settlement_job.today_business_date", lambda: TODAY)
    monkeypatch.setattr("lotto_ledger.jobs.monthly_closing_job.today_business_date", lambda: TODAY)
    monkeypatch.setattr("lotto_ledger.services.carry_forward_service.today_business_date", lambda: TODAY)
    return TODAY
