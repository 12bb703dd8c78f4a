"""
Unit tests for the logging helpers: context propagation and JSON output.
"""

import json
import logging

import pytest

from src.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    get_logging_health,
    set_log_context,
)

pytestmark = pytest.mark.unit


def _record(msg: str = "Listing sold", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="src.modules.marketplace.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    clear_log_context()
    yield
    clear_log_context()


class TestLogContext:
    async def test_async_context_scopes_fields(self):
        async with LogContext(user_id=42, operation="marketplace.buy") as ctx:
            current = get_log_context()
            assert current["user_id"] == "42"
            assert current["operation"] == "marketplace.buy"
            assert len(ctx.context["correlation_id"]) == 8

        assert get_log_context() == {}

    def test_request_id_becomes_correlation_id(self):
        with LogContext(request_id="req-1"):
            assert get_log_context()["correlation_id"] == "req-1"

    def test_set_log_context_merges(self):
        set_log_context(user_id=7)
        set_log_context(operation="shop.buy_base_roll", listing_id=3)

        assert get_log_context() == {
            "user_id": "7",
            "operation": "shop.buy_base_roll",
            "listing_id": 3,
        }


class TestFilterAndFormatter:
    def test_filter_defaults(self):
        record = _record()
        ContextFilter().filter(record)

        assert record.user_id == "N/A"
        assert record.operation == "N/A"
        assert record.correlation_id == "N/A"
        assert record.component == "marketplace"

    @pytest.mark.parametrize(
        "logger_name,component",
        [
            ("src.modules.ledger.service.LedgerRepository", "ledger"),
            ("src.core.database.service", "database"),
            ("__main__", "__main__"),
        ],
    )
    def test_component_from_logger_name(self, logger_name, component):
        record = _record()
        record.name = logger_name
        ContextFilter().filter(record)
        assert record.component == component

    def test_explicit_extra_wins_over_context(self):
        record = _record(user_id=5, operation="craft")
        with LogContext(user_id=1, operation="marketplace.buy"):
            ContextFilter().filter(record)

        assert record.user_id == 5
        assert record.operation == "craft"

    def test_json_includes_context_and_extra(self):
        record = _record(listing_id=9, price_silver=500)
        with LogContext(user_id=1, operation="marketplace.buy", correlation_id="abc12345"):
            ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Listing sold"
        assert payload["user_id"] == "1"
        assert payload["correlation_id"] == "abc12345"
        assert payload["operation"] == "marketplace.buy"
        assert payload["refs"] == {"listing_id": 9}
        assert payload["amounts"] == {"price_silver": 500}
        assert "extra" not in payload

    def test_json_keeps_other_fields_in_extra(self):
        record = _record(seller_id=3, fee_silver=5, reason="SALE_EARN")
        ContextFilter().filter(record)

        payload = json.loads(JSONFormatter().format(record))

        assert payload["refs"] == {"seller_id": 3}
        assert payload["amounts"] == {"fee_silver": 5}
        assert payload["extra"] == {"reason": "SALE_EARN"}
        assert payload["component"] == "marketplace"
        assert "user_id" not in payload

    def test_health_snapshot(self):
        health = get_logging_health()
        assert health.initialized is True
        assert health.records_dropped >= 0
        assert health.queue_max_size == 10_000
