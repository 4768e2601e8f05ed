"""Tests for the structured logging system (erp_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from erp_kernel.domain.documents import DocumentType
from erp_kernel.exceptions import OverConsumptionError
from erp_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def stream():
    """A StringIO wired to a freshly configured erp_kernel logger."""
    buffer = StringIO()
    configure_logging(stream=buffer, level=logging.DEBUG)
    return buffer


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def _last(stream: StringIO) -> dict:
    return _records(stream)[-1]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_envelope(self, stream):
        get_logger("engines.calculation").info("calculation_completed")

        record = _last(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "calculation_completed"
        assert record["logger"] == "erp_kernel.engines.calculation"
        assert record["ts"].endswith("+00:00")

    def test_extras_are_serialized(self, stream):
        link_id = uuid4()
        get_logger("test").info(
            "conversion_completed",
            extra={
                "grand_total": Decimal("255300.00"),
                "target_type": DocumentType.INVOICE,
                "valid_until": date(2024, 1, 31),
                "link_id": link_id,
                "line_ids": ["L1", "L2"],
            },
        )

        record = _last(stream)
        assert record["grand_total"] == "255300.00"
        assert record["target_type"] == "invoice"
        assert record["valid_until"] == "2024-01-31"
        assert record["link_id"] == str(link_id)
        assert record["line_ids"] == ["L1", "L2"]

    def test_envelope_wins_over_extras(self, stream):
        get_logger("test").info("workflow_transition", extra={"ts": "caller-supplied"})
        assert _last(stream)["ts"] != "caller-supplied"

    def test_context_fields_included(self, stream):
        LogContext.set(correlation_id="req-1", document_id="inv-456")
        get_logger("test").info("posted")

        record = _last(stream)
        assert record["correlation_id"] == "req-1"
        assert record["document_id"] == "inv-456"

    def test_no_context_fields_when_empty(self, stream):
        get_logger("test").info("bare_message")

        record = _last(stream)
        assert "correlation_id" not in record
        assert "document_id" not in record

    def test_plain_exception(self, stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _last(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_fields(self, stream):
        try:
            raise OverConsumptionError("L1", Decimal("50"), Decimal("40"))
        except OverConsumptionError:
            get_logger("services.conversion").error("conversion_rejected", exc_info=True)

        record = _last(stream)
        assert record["exc_code"] == "OVER_CONSUMPTION"
        assert record["exc_type"] == "OverConsumptionError"
        assert record["exc_source_line_id"] == "L1"
        assert record["exc_requested"] == "50"
        assert record["exc_remaining"] == "40"

    def test_one_json_object_per_line(self, stream):
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        records = _records(stream)
        assert [r["message"] for r in records] == ["first", "second", "third"]
        assert [r["level"] for r in records] == ["INFO", "WARNING", "DEBUG"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", document_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "document_id": "y"}

    def test_set_is_additive_and_ignores_none(self):
        LogContext.set(correlation_id="a")
        LogContext.set(document_id="b", correlation_id=None)
        assert LogContext.get_all() == {"correlation_id": "a", "document_id": "b"}

    def test_all_fields(self):
        LogContext.set(correlation_id="c", document_id="d", actor_id="a", trace_id="t")
        assert LogContext.get_all() == {
            "correlation_id": "c",
            "document_id": "d",
            "actor_id": "a",
            "trace_id": "t",
        }

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="u-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="event_id"):
            LogContext.set(event_id="e")
        with pytest.raises(TypeError):
            with LogContext.bind(producer="p"):
                pass

    def test_bind_restores_previous_value(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", actor_id="u-1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "actor_id": "u-1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(document_id="inv-1"):
                raise RuntimeError("abort")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("erp_kernel").handlers) == 1

    def test_default_level_drops_debug(self):
        buffer = StringIO()
        configure_logging(stream=buffer)
        get_logger("test").debug("hidden")
        get_logger("test").info("shown")
        assert [r["message"] for r in _records(buffer)] == ["shown"]

    def test_explicit_handler(self):
        buffer = StringIO()
        configure_logging(handler=logging.StreamHandler(buffer))
        get_logger("test").info("via_handler")
        assert _last(buffer)["message"] == "via_handler"

    def test_get_logger_returns_child(self):
        assert get_logger("services.workflow_executor").name == (
            "erp_kernel.services.workflow_executor"
        )

    def test_reset_restores_propagation(self):
        configure_logging(stream=StringIO())
        reset_logging()
        root = logging.getLogger("erp_kernel")
        assert root.handlers == []
        assert root.propagate is True
