from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
from enum import Enum


class Interval(str, Enum):
    ONE_MINUTE = "1m"
    FIVE_MINUTES = "5m"
    FIFTEEN_MINUTES = "15m"
    ONE_HOUR = "1h"
    FOUR_HOURS = "4h"


INTERVAL_MS: dict[str, int] = {
    Interval.ONE_MINUTE.value: 60 * 1000,
    Interval.FIVE_MINUTES.value: 5 * 60 * 1000,
    Interval.FIFTEEN_MINUTES.value: 15 * 60 * 1000,
    Interval.ONE_HOUR.value: 60 * 60 * 1000,
    Interval.FOUR_HOURS.value: 4 * 60 * 60 * 1000,
}

DAY_MS = 24 * 60 * 60 * 1000

SYMBOL_PATTERN = r"^[A-Z0-9]{2,20}$"


def interval_ms(interval: str) -> int:
    """Wall-clock duration of one candle in milliseconds."""
    key = interval.value if isinstance(interval, Interval) else interval
    try:
        return INTERVAL_MS[key]
    except KeyError:
        raise ValueError(f"Unsupported interval: {interval}")


def ms_to_iso(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


class Candle(BaseModel):
    timestamp: int  # open time, epoch ms
    open: float
    high: float
    low: float
    close: float
    volume: float
    time: str  # ISO-8601 open time


class KlinesResponse(BaseModel):
    symbol: str
    interval: Interval
    limit: int
    close_prices: list[float]


class TimeRange(BaseModel):
    start_time: str
    end_time: str


class LiveChartResponse(BaseModel):
    symbol: str
    interval: Interval
    hours: int
    data_points: int
    current_price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: float = 0.0
    chart_data: list[Candle]
    time_range: TimeRange


class CoverageInfo(BaseModel):
    """How much of the requested span a chunked retrieval actually covered."""

    requested_start: int
    requested_end: int
    covered_start: int  # open time of the first collected candle
    covered_end: int  # open time of the last collected candle
    ideal_chunks: int
    chunks_used: int
    chunks_succeeded: int
    chunks_failed: int
    data_points: int
    truncated: bool = Field(description="True when the per-interval chunk ceiling shortened the span")
    covered_days: float


class RetrievalResult(BaseModel):
    symbol: str
    interval: Interval
    closes: list[float]
    coverage: CoverageInfo


class HistoricalResponse(BaseModel):
    symbol: str
    interval: Interval
    start_time: str
    end_time: str
    total_data_points: int
    close_prices: list[float]
    coverage: CoverageInfo
