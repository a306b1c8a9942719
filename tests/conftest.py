"""
Pytest fixtures for the dues engine test suite.

Provides:
- Structured logging configured for the whole session
- ``captured_logs`` for asserting on JSON log records
- Billing configurations and a deterministic clock
- In-memory collaborators for the service layer (see tests/factories.py)
- SQLite in-memory SQLAlchemy sessions for the credit store
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest

from dues_kernel.db import create_db_engine, create_tables, drop_tables, make_session_factory
from dues_kernel.domain import BillingConfig, BillingFrequency, DeterministicClock
from dues_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from tests.factories import InMemoryBillStore, InMemoryCreditStore, RecordingLedger

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture dues_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            distributor.distribute(...)
            logs = captured_logs()
            assert any(r["message"] == "distribution_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("dues_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def monthly_config() -> BillingConfig:
    """5% monthly compounding, 10 grace days, calendar fiscal year."""
    return BillingConfig(penalty_rate=Decimal("0.05"), penalty_days=10)


@pytest.fixture
def quarterly_config() -> BillingConfig:
    """Quarterly HOA dues with a July fiscal year."""
    return BillingConfig(
        penalty_rate=Decimal("0.05"),
        penalty_days=10,
        billing_period=BillingFrequency.QUARTERLY,
        fiscal_year_start_month=7,
    )


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2025, 9, 15, 12, 0, tzinfo=UTC))


# =============================================================================
# Service collaborators
# =============================================================================


@pytest.fixture
def bill_store() -> InMemoryBillStore:
    return InMemoryBillStore()


@pytest.fixture
def credit_store() -> InMemoryCreditStore:
    return InMemoryCreditStore()


@pytest.fixture
def ledger() -> RecordingLedger:
    return RecordingLedger()


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite://")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()
