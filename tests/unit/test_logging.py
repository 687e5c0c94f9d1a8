"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import logging
from decimal import Decimal
from uuid import uuid4

from ledger_kernel.exceptions import InvalidPeriodKeyError
from ledger_kernel.logging_config import LogContext, get_logger


class TestStructuredFormatter:

    def test_basic_json_output(self, captured_logs):
        get_logger("test").info("hello")

        record = captured_logs()[-1]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self, captured_logs):
        get_logger("test").info("posted", extra={"line_count": 2, "amount": Decimal("1.50")})

        record = captured_logs()[-1]
        assert record["line_count"] == 2
        assert record["amount"] == "1.50"

    def test_exception_fields(self, captured_logs):
        try:
            raise InvalidPeriodKeyError("Monthly", "2025-13")
        except InvalidPeriodKeyError:
            get_logger("test").error("failed", exc_info=True)

        record = captured_logs()[-1]
        assert record["exc_type"] == "InvalidPeriodKeyError"
        assert record["exc_code"] == "INVALID_PERIOD_KEY"
        assert record["exc_period_key"] == "2025-13"
        assert "traceback" in record


class TestLogContext:

    def test_bound_fields_are_included(self, captured_logs):
        tenant_id = uuid4()
        with LogContext.bind(correlation_id="corr-1", tenant_id=tenant_id):
            get_logger("test").info("inside")

        record = captured_logs()[-1]
        assert record["correlation_id"] == "corr-1"
        assert record["tenant_id"] == str(tenant_id)

    def test_bind_restores_previous_values(self, captured_logs):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            get_logger("test").info("inner")
        get_logger("test").info("outer")

        inner, outer = captured_logs()[-2:]
        assert inner["correlation_id"] == "inner"
        assert outer["correlation_id"] == "outer"

    def test_clear(self, captured_logs):
        LogContext.set(job_type="receipt.extract")
        LogContext.clear()
        get_logger("test").info("cleared")

        assert "job_type" not in captured_logs()[-1]


class TestLoggerHierarchy:

    def test_records_do_not_propagate_to_root(self):
        assert logging.getLogger("ledger_kernel").propagate is False

    def test_loggers_share_the_namespace(self):
        assert get_logger("services.posting").name == "ledger_kernel.services.posting"
