"""
Pytest fixtures for the ERP document core test suite.

Provides:
- Structured logging for every test, plus a ``captured_logs`` fixture
- The default WorkflowExecutor and ConversionOrchestrator
- An in-memory SQLite session for link persistence tests

The pure layers (domain, engines, modules) need no database; only the
``db_session`` fixture touches SQLAlchemy.
"""

import json
import logging
from io import StringIO

import pytest

from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from erp_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from erp_services.conversion import ConversionOrchestrator
from erp_services.reconciliation_service import BankReconciliationService
from erp_services.workflow_executor import WorkflowExecutor
from tests.factories import sequential_ids


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
    Capture erp_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, executor):
            executor.apply_transition(doc, "submit")
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("erp_kernel")
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
# Service fixtures
# =============================================================================


@pytest.fixture
def executor():
    """WorkflowExecutor with every module's workflows, guards and effects."""
    return WorkflowExecutor()


@pytest.fixture
def orchestrator(executor):
    """ConversionOrchestrator issuing deterministic ids (doc-1, doc-2, ...)."""
    return ConversionOrchestrator(executor, id_factory=sequential_ids("doc"))


@pytest.fixture
def reconciliation(executor):
    return BankReconciliationService(executor)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_session():
    """
    Session on a fresh in-memory SQLite database.

    The test owns the transaction boundary; the session is rolled back and
    the schema dropped afterwards.
    """
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        drop_tables()
        reset_engine()
