"""Test fixtures and configuration."""

import asyncio
import logging
import os
import sys

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from erp_recon.logger import get_logger

logger = get_logger(__name__)

# Set ENVIRONMENT for pydantic settings
os.environ["ENVIRONMENT"] = "testing"


def get_test_db_url(tmp_path) -> str:
    """Database URL for one test.

    TEST_DATABASE_URL points the suite at a real PostgreSQL; otherwise each
    test gets its own SQLite file so services can open independent sessions.
    """
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'recon.db'}"


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


# --- Matching config cache cleanup ---
@pytest.fixture(autouse=True)
def cleanup_matching_config(monkeypatch):
    """Clear the matching config cache and threshold overrides around each test."""
    from erp_recon.services.matching_config import clear_matching_config_cache

    monkeypatch.delenv("RECONCILIATION_EXACT_THRESHOLD", raising=False)
    monkeypatch.delenv("RECONCILIATION_FUZZY_THRESHOLD", raising=False)
    clear_matching_config_cache()
    yield
    clear_matching_config_cache()


@pytest.fixture(autouse=True)
def single_worker_settings(monkeypatch):
    """SQLite allows one writer at a time; API batch runs use a single worker."""
    from erp_recon.config import settings

    monkeypatch.setattr(settings, "reconciliation_max_workers", 1)
    monkeypatch.setattr(settings, "reconciliation_batch_deadline_seconds", None)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a fresh schema for every test."""
    from erp_recon.database import Base
    from erp_recon.models import (  # noqa: F401
        BankTransaction,
        Customer,
        Invoice,
        Payment,
        ReconciliationLog,
    )

    engine = create_async_engine(get_test_db_url(tmp_path), echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    try:
        await asyncio.wait_for(engine.dispose(), timeout=10.0)
    except TimeoutError:
        logger.error("CRITICAL: Engine disposal timed out - connections may be leaked")


@pytest_asyncio.fixture(scope="function")
async def session_maker(db_engine):
    """Session maker bound to the test engine, also used by API handlers."""
    from erp_recon import database

    maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    previous = database.set_test_session_maker(maker)
    yield maker
    database.set_test_session_maker(previous)


@pytest_asyncio.fixture(scope="function")
async def db(session_maker):
    """Session for arranging and inspecting data.

    Services open their own sessions, so fixtures must commit what they
    create before calling them. Use ``refresh`` to see their writes.
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(session_maker):
    """Create async test client bound to the test database."""
    from erp_recon.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": "operator-1"},
    ) as client_instance:
        yield client_instance
