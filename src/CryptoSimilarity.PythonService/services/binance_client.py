"""Binance spot klines client."""

import math
import requests
import pandas as pd
import logging
import threading
from typing import Optional

from config import get_settings
from utils.rate_limiter import TokenBucketRateLimiter, binance_rate_limiter

logger = logging.getLogger(__name__)

OPEN_TIME_INDEX = 0
CLOSE_INDEX = 4
MAX_LIMIT = 1000


class TransientFetchError(Exception):
    """Timeout or connection failure; worth retrying."""


class ProviderError(Exception):
    """Provider answered with an error status or an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BinanceKlinesClient:
    """Fetches raw candle rows from the Binance ``/api/v3/klines`` endpoint."""

    KLINES_PATH = "/api/v3/klines"

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.binance_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout_seconds
        self.rate_limiter = rate_limiter or binance_rate_limiter
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent or settings.user_agent})

    def fetch_klines(
        self,
        symbol: str,
        interval: str,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        limit: int = MAX_LIMIT,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[list]:
        """Single provider call; returns the raw candle rows."""
        params = {"symbol": symbol, "interval": interval, "limit": min(limit, MAX_LIMIT)}
        if start_ms is not None:
            params["startTime"] = int(start_ms)
        if end_ms is not None:
            params["endTime"] = int(end_ms)

        if not self.rate_limiter.wait(cancel_event=cancel_event):
            raise TransientFetchError("Provider rate limit budget not available")

        try:
            response = self.session.get(
                f"{self.base_url}{self.KLINES_PATH}",
                params=params,
                timeout=timeout or self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientFetchError(f"Klines request failed for {symbol}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Klines request error for {symbol}: {e}") from e

        if not response.ok:
            raise ProviderError(
                f"Binance API error: {response.status_code} - {response.reason}",
                status_code=response.status_code,
            )

        try:
            rows = response.json()
        except ValueError as e:
            raise ProviderError(f"Unparseable klines body for {symbol}: {e}") from e

        if not isinstance(rows, list):
            raise ProviderError(f"Unexpected klines payload for {symbol}: {type(rows).__name__}")
        return rows


def timed_closes_from_klines(rows) -> list[tuple[int, float]]:
    """``(open_time_ms, close)`` pairs from raw kline rows.

    Rows whose close is unparseable or non-finite are skipped; a payload that
    is not a list of candle rows raises :class:`ProviderError`.
    """
    if not isinstance(rows, list):
        raise ProviderError("Klines payload is not a list")

    pairs: list[tuple[int, float]] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) <= CLOSE_INDEX:
            raise ProviderError(f"Malformed kline row: {row!r}")
        try:
            value = float(row[CLOSE_INDEX])
        except (TypeError, ValueError):
            continue
        if not math.isfinite(value):
            continue
        try:
            open_time = int(row[OPEN_TIME_INDEX])
        except (TypeError, ValueError) as e:
            raise ProviderError(f"Malformed kline open time: {row[OPEN_TIME_INDEX]!r}") from e
        pairs.append((open_time, value))
    return pairs


def closes_from_klines(rows) -> list[float]:
    """Closing prices from raw kline rows, skipping unparseable values."""
    return [close for _, close in timed_closes_from_klines(rows)]


def klines_to_frame(rows) -> pd.DataFrame:
    """OHLCV DataFrame keyed by candle open time (epoch ms)."""
    columns = ["timestamp", "open", "high", "low", "close", "volume"]
    if not isinstance(rows, list):
        raise ProviderError("Klines payload is not a list")
    if not rows:
        return pd.DataFrame(columns=columns)

    if any(not isinstance(row, (list, tuple)) or len(row) < len(columns) for row in rows):
        raise ProviderError("Malformed kline rows: expected at least 6 columns")
    try:
        df = pd.DataFrame([row[:6] for row in rows], columns=columns)
        df["timestamp"] = df["timestamp"].astype("int64")
    except (TypeError, ValueError) as e:
        raise ProviderError(f"Malformed kline rows: {e}") from e
    for col in columns[1:]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df = df.dropna(subset=["close"])
    df = df.drop_duplicates(subset=["timestamp"], keep="first").sort_values("timestamp")
    return df.reset_index(drop=True)
