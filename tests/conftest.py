"""
Pytest configuration and fixtures
"""

import os
from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from models.base import Base
from models.raw_data import AgmarkRaw, EnamRaw
from normalization.registry import CommodityRegistry

REPORT_DATE = date(2026, 1, 14)


def _test_database_url(tmp_path) -> str:
    """TEST_DATABASE_URL when set (e.g. a PostgreSQL test db), else a throwaway SQLite file"""
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path}/test.db"


def _enable_sqlite_savepoints(engine):
    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine"""
    engine = create_async_engine(
        _test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def registry(session_factory):
    """Empty registry with fixed settings"""
    return CommodityRegistry(
        session_factory,
        code_prefix="VAAR",
        default_group_id=99,
        default_group_name="Unclassified",
        max_mint_attempts=3,
    )


@pytest.fixture
def agmark_row():
    """Factory for unsaved Agmarknet raw rows"""
    def _make(**overrides):
        values = {
            "report_date": REPORT_DATE,
            "cmdt_name": "Onion",
            "cmdt_grp_name": "Vegetables",
            "market_name": "LASALGAON",
            "district_name": "NASHIK",
            "state_name": "MAHARASHTRA",
            "unit_name_price": "Rs./Quintal",
            "min_price": 1000.0,
            "max_price": 1400.0,
            "model_price": 1200.0,
        }
        values.update(overrides)
        return AgmarkRaw(**values)
    return _make


@pytest.fixture
def enam_row():
    """Factory for unsaved eNAM raw rows"""
    def _make(**overrides):
        values = {
            "report_date": REPORT_DATE,
            "enam_id": "E-1",
            "state_name": "MAHARASHTRA",
            "apmc_name": "PUNE",
            "commodity_name": "onion",
            "unit_name_price": "Qui",
            "min_price": 1100.0,
            "modal_price": 1250.0,
            "max_price": 1500.0,
            "commodity_arrivals": 50.0,
        }
        values.update(overrides)
        return EnamRaw(**values)
    return _make


@pytest.fixture
def sample_snapshot():
    """Registry snapshot in the collaborator format"""
    return {
        "data": {
            "cmdt_group_data": [
                {"id": 1, "cmdt_grp_name": "Cereals"},
                {"id": 2, "cmdt_grp_name": "Vegetables"},
            ],
            "cmdt_data": [
                {"cmdt_id": 1, "cmdt_name": "Wheat", "cmdt_group_id": 1, "uuiq": "W1"},
                {"cmdt_id": 2, "cmdt_name": "Green Gram", "cmdt_group_id": 1, "uuiq": "G1"},
                {"cmdt_id": 3, "cmdt_name": "Onion", "cmdt_group_id": 2, "uuiq": "O1"},
            ],
        }
    }
