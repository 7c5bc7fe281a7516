"""Tests for stock_kernel.logging_config: JSON records, context binding, setup."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.domain.types import Verdict
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def json_logs():
    """Reconfigure logging onto a private stream; restore the suite setup after.

    Returns a function that parses everything logged so far.
    """
    reset_logging()
    stream = StringIO()
    configure_logging(stream=stream)

    def _records() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _records

    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestRecordShape:

    def test_core_keys(self, json_logs):
        get_logger("services.stock_ledger").info("stock_movement_recorded")

        (record,) = json_logs()
        assert record["level"] == "INFO"
        assert record["logger"] == "stock_kernel.services.stock_ledger"
        assert record["message"] == "stock_movement_recorded"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_become_keys(self, json_logs):
        get_logger("test").info("campaign_reconciled", extra={"anomalies": 2, "sync_stock": True})

        (record,) = json_logs()
        assert record["anomalies"] == 2
        assert record["sync_stock"] is True

    def test_non_json_types_are_serialized(self, json_logs):
        entry_id = uuid4()
        get_logger("test").info(
            "typed",
            extra={"entry_id": entry_id, "tolerance": Decimal("0.05"), "verdict": Verdict.CONSISTENT},
        )

        (record,) = json_logs()
        assert record["entry_id"] == str(entry_id)
        assert record["tolerance"] == "0.05"
        assert record["verdict"] == "consistent"

    def test_debug_is_filtered_at_info(self, json_logs):
        logger = get_logger("test")
        logger.debug("hidden")
        logger.warning("shown")

        assert [r["message"] for r in json_logs()] == ["shown"]

    def test_plain_exception(self, json_logs):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").exception("failed")

        (record,) = json_logs()
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_is_flattened(self, json_logs):
        item_id = str(uuid4())
        try:
            raise InsufficientStockError(item_id, 2, 5)
        except InsufficientStockError:
            get_logger("test").error("adjust_failed", exc_info=True)

        (record,) = json_logs()
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_stock_item_id"] == item_id
        assert record["exc_current_level"] == 2
        assert record["exc_requested_qty"] == 5


class TestLogContext:

    def test_bound_fields_appear_on_records(self, json_logs):
        tenant_id = uuid4()
        with LogContext.bind(tenant_id=tenant_id, campaign_id="c-9"):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = json_logs()
        assert inside["tenant_id"] == str(tenant_id)
        assert inside["campaign_id"] == "c-9"
        assert "tenant_id" not in outside

    def test_extra_does_not_override_context(self, json_logs):
        LogContext.set(campaign_id="from-context")
        get_logger("test").info("clash", extra={"campaign_id": "from-extra"})

        (record,) = json_logs()
        assert record["campaign_id"] == "from-context"

    def test_nested_bind_restores_outer_value(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner"):
            assert LogContext.get_all()["actor_id"] == "inner"
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(trace_id="t-1"):
                raise RuntimeError("inside")

        assert LogContext.get_all() == {}

    def test_none_values_are_ignored(self):
        LogContext.set(correlation_id="keep")
        LogContext.set(correlation_id=None, tenant_id=None)

        assert LogContext.get_all() == {"correlation_id": "keep"}

    def test_unknown_field_is_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(invoice_id="x")

    def test_clear(self):
        LogContext.set(correlation_id="c", tenant_id="t", actor_id="a", campaign_id="p", trace_id="r")
        assert len(LogContext.get_all()) == 5

        LogContext.clear()

        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_second_call_is_a_no_op(self, json_logs):
        configure_logging(stream=StringIO())

        assert len(logging.getLogger("stock_kernel").handlers) == 1

    def test_records_do_not_reach_the_root_logger(self, json_logs):
        assert logging.getLogger("stock_kernel").propagate is False

    def test_custom_handler_and_level(self):
        reset_logging()
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        try:
            configure_logging(handler=handler, level=logging.DEBUG)
            get_logger("batch.count_batcher").debug("hierarchy_test")

            record = json.loads(stream.getvalue())
            assert record["logger"] == "stock_kernel.batch.count_batcher"
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)
