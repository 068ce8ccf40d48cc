"""
Core pytest configuration for the entire test suite.

This module provides only the shared setup needed across ALL groups of tests
(exceptions, retry, db, logging, api):

- quiet third-party loggers and install the package logging configuration once
- a throwaway SQLite database (aiosqlite) and a session factory bound to it
- small helpers to drive the retry engine without real waiting

Group-specific helpers live next to the tests that use them.
"""

from __future__ import annotations

# -------------------------------
# Standard library imports
# -------------------------------
import sys
import logging
from pathlib import Path
from typing import AsyncGenerator

# -------------------------------
# Early logging tuning (IMPORTANT)
# -------------------------------
# Keep this block above the package imports so noisy loggers are tuned before
# SQLAlchemy / httpx initialize their own.
NOISY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "asyncio",
    "httpx",
    "aiosqlite",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

# ------------------------------------------------------------------------------------------------
# PATH PATCHING
# ------------------------------------------------------------------------------------------------

# Ensure 'src' on sys.path so `import resilience...` works without an editable install
SRC = Path(__file__).resolve().parents[2]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# -------------------------------
# Third-party / project imports
# -------------------------------
import pytest
from pytest import FixtureRequest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from resilience.config import get_settings
from resilience.core.failure_logger import FailureLogger
from resilience.core.logging.builder import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_logging(request: FixtureRequest):
    """
    Install the package logging configuration for the whole test session.

    dictConfig can drop pytest's capture handler from the root logger, so it is
    re-attached when available (caplog.records keeps working).
    """
    setup_logging(settings)

    try:
        caplog_plugin = request.config.pluginmanager.getplugin("logging")
        handler = getattr(caplog_plugin, "handler", None)
        if handler:
            logging.getLogger().addHandler(handler)
    except Exception:
        # not fatal: tests asserting on logs use the caplog fixture directly
        pass

    yield


# ------------------------------------------------------------------------------------------------
# DATABASE FIXTURES
# ------------------------------------------------------------------------------------------------


@pytest.fixture()
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite database per test (an in-memory database would not be shared
    between the sessions a transaction helper opens).
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'resilience.db'}")

    async with engine.begin() as conn:
        await conn.execute(text("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)"))

    yield engine

    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


# ------------------------------------------------------------------------------------------------
# RETRY HELPERS
# ------------------------------------------------------------------------------------------------


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyOperation:
    """
    Zero-argument async callable that raises the queued errors in order, then returns `value`.
    """

    def __init__(self, errors=(), value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def failure_logger() -> FailureLogger:
    return FailureLogger("resilience.tests.failures", is_production=False)


@pytest.fixture()
def make_flaky():
    """Factory fixture: make_flaky([TimeoutError("t")], value=42)."""
    return FlakyOperation
