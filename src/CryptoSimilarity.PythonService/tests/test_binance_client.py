"""Unit tests for the Binance klines client and kline parsing helpers."""

import pytest
import requests
from unittest.mock import MagicMock

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.binance_client import (
    BinanceKlinesClient, ProviderError, TransientFetchError,
    closes_from_klines, klines_to_frame, timed_closes_from_klines,
)


def _row(ts, close):
    return [ts, "1.0", "2.0", "0.5", close, "10.0", ts + 59999, "0", 1, "0", "0", "0"]


def _client(response=None, side_effect=None, limiter_ok=True):
    session = MagicMock()
    session.headers = {}
    if side_effect is not None:
        session.get.side_effect = side_effect
    else:
        session.get.return_value = response
    limiter = MagicMock()
    limiter.wait.return_value = limiter_ok
    client = BinanceKlinesClient(
        base_url="https://api.example.test/",
        user_agent="test-agent",
        rate_limiter=limiter,
        session=session,
        timeout=3,
    )
    return client, session


def _response(status=200, payload=None, json_error=None):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.reason = "Internal Server Error" if status >= 500 else "OK"
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


class TestFetchKlines:

    def test_request_parameters(self):
        client, session = _client(_response(payload=[_row(0, "1.5")]))

        rows = client.fetch_klines("BTCUSDT", "1m", start_ms=1000, end_ms=2000, limit=5000)

        assert rows == [_row(0, "1.5")]
        args, kwargs = session.get.call_args
        assert args[0] == "https://api.example.test/api/v3/klines"
        assert kwargs["params"] == {
            "symbol": "BTCUSDT", "interval": "1m", "limit": 1000,
            "startTime": 1000, "endTime": 2000,
        }
        assert kwargs["timeout"] == 3
        assert session.headers["User-Agent"] == "test-agent"

    def test_per_call_timeout_overrides_default(self):
        client, session = _client(_response(payload=[]))
        client.fetch_klines("BTCUSDT", "1h", timeout=0.5)
        assert session.get.call_args.kwargs["timeout"] == 0.5
        assert "startTime" not in session.get.call_args.kwargs["params"]

    def test_error_status_is_provider_error(self):
        client, _ = _client(_response(status=500))
        with pytest.raises(ProviderError) as exc:
            client.fetch_klines("BTCUSDT", "1m")
        assert exc.value.status_code == 500
        assert "500" in str(exc.value)

    @pytest.mark.parametrize("error", [
        requests.exceptions.Timeout("read timed out"),
        requests.exceptions.ConnectionError("connection reset"),
    ])
    def test_network_failures_are_transient(self, error):
        client, _ = _client(side_effect=error)
        with pytest.raises(TransientFetchError):
            client.fetch_klines("BTCUSDT", "1m")

    def test_invalid_json_is_provider_error(self):
        client, _ = _client(_response(json_error=ValueError("Expecting value")))
        with pytest.raises(ProviderError):
            client.fetch_klines("BTCUSDT", "1m")

    def test_non_list_payload_is_provider_error(self):
        client, _ = _client(_response(payload={"code": -1121, "msg": "Invalid symbol."}))
        with pytest.raises(ProviderError, match="dict"):
            client.fetch_klines("NOPE", "1m")

    def test_rate_limit_budget_unavailable(self):
        client, session = _client(_response(payload=[]), limiter_ok=False)
        with pytest.raises(TransientFetchError):
            client.fetch_klines("BTCUSDT", "1m")
        session.get.assert_not_called()


class TestClosesFromKlines:

    def test_reads_close_column(self):
        rows = [_row(0, "100.5"), _row(60000, "101.25")]
        assert closes_from_klines(rows) == [100.5, 101.25]

    def test_skips_unparseable_and_non_finite(self):
        rows = [_row(0, "100"), _row(1, "abc"), _row(2, "nan"), _row(3, None), _row(4, "102")]
        assert closes_from_klines(rows) == [100.0, 102.0]

    def test_short_row_is_provider_error(self):
        with pytest.raises(ProviderError):
            closes_from_klines([[0, "1", "2"]])

    def test_non_list_payload(self):
        with pytest.raises(ProviderError):
            closes_from_klines({"rows": []})

    def test_empty(self):
        assert closes_from_klines([]) == []

    def test_open_times_paired_with_closes(self):
        rows = [_row(0, "100"), _row(60000, "bad"), _row(120000, "102")]
        assert timed_closes_from_klines(rows) == [(0, 100.0), (120000, 102.0)]

    def test_unparseable_open_time_is_provider_error(self):
        with pytest.raises(ProviderError):
            timed_closes_from_klines([["soon", "1", "2", "0.5", "1.5", "10"]])


class TestKlinesToFrame:

    def test_sorted_and_deduplicated(self):
        rows = [_row(120000, "3"), _row(0, "1"), _row(60000, "2"), _row(0, "9")]

        df = klines_to_frame(rows)

        assert list(df.columns) == ["timestamp", "open", "high", "low", "close", "volume"]
        assert df["timestamp"].tolist() == [0, 60000, 120000]
        assert df["close"].tolist() == [1.0, 2.0, 3.0]

    @pytest.mark.parametrize("rows", [[[1, 2]], {"code": -1}, [["x", "1", "2", "0.5", "1.5", "10"]]])
    def test_malformed_rows_are_provider_errors(self, rows):
        with pytest.raises(ProviderError):
            klines_to_frame(rows)

    def test_empty_rows(self):
        df = klines_to_frame([])
        assert df.empty
        assert "close" in df.columns
