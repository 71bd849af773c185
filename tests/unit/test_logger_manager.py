"""
Unit tests for bot_logging/logger_manager.py.

Tests cover the JSON formatter's trace_id field and the deep-dive trace
helpers' serialization of uint256 prices.
"""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock, patch

from bot_logging.logger_manager import JSONFormatter, log_data_entry, log_data_output


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("deep_dive", logging.INFO, __file__, 10, "traced", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_trace_id_included(self):
        entry = json.loads(JSONFormatter().format(_record(trace_id="USDC-00000001")))

        assert entry["trace_id"] == "USDC-00000001"
        assert entry["message"] == "traced"

    def test_trace_id_absent_by_default(self):
        entry = json.loads(JSONFormatter().format(_record()))

        assert "trace_id" not in entry


class TestDeepDiveHelpers:

    def test_output_price_above_float_precision_kept_exact(self):
        price = 2**200
        deep_dive = MagicMock()

        with patch("bot_logging.logger_manager.get_deep_dive_logger", return_value=deep_dive):
            log_data_output(
                trace_id="USDC-00000001",
                source_module="oracle_pipeline",
                what="PricePrediction for USDC",
                why="test",
                data_type="PricePrediction",
                data={"new_price": price, "asset": "USDC"},
                next_stage="consumer",
            )

        args, kwargs = deep_dive.info.call_args
        payload = json.loads(args[0])
        assert payload["event"] == "DATA_OUTPUT"
        assert payload["data"]["new_price"] == str(price)
        assert kwargs["extra"] == {"trace_id": "USDC-00000001"}

    def test_entry_carries_trace_id(self):
        deep_dive = MagicMock()

        with patch("bot_logging.logger_manager.get_deep_dive_logger", return_value=deep_dive):
            log_data_entry(
                trace_id="DAI-00000002",
                source_module="oracle_pipeline",
                what="Pending transmit()",
                why="test",
                data_type="PendingTransaction",
                data={"report_bytes": 256},
                previous_stage="pending_tx_streamer",
            )

        args, kwargs = deep_dive.info.call_args
        payload = json.loads(args[0])
        assert payload["event"] == "DATA_ENTRY"
        assert payload["data"] == {"report_bytes": 256}
        assert kwargs["extra"]["trace_id"] == "DAI-00000002"
