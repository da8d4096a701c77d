from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
import math

from models.market_data import Interval, SYMBOL_PATTERN, TimeRange


class Match(BaseModel):
    """A window of the haystack series that resembles the query pattern."""

    model_config = ConfigDict(frozen=True)

    start_index: int
    end_index: int
    similarity: float = Field(ge=0, le=1)
    data: list[float]
    continuation: list[float]
    continuation_start_index: int
    continuation_end_index: int


class TrendStats(BaseModel):
    total_change: float  # percent
    volatility: float  # RMS of per-step percent changes
    up_moves: int
    down_moves: int
    sideways_moves: int
    total_moves: int
    avg_change: float  # percent


class PatternSearchRequest(BaseModel):
    symbol: str = Field(pattern=SYMBOL_PATTERN)
    interval: Interval
    pattern: list[float] = Field(min_length=1)
    threshold: float = Field(default=0.75, ge=0, le=1)
    max_matches: int = Field(default=10, ge=1, le=20)
    continuation_length: int = Field(default=30, ge=10, le=100)

    @field_validator("pattern")
    @classmethod
    def _finite_pattern(cls, value: list[float]) -> list[float]:
        if not all(math.isfinite(v) for v in value):
            raise ValueError("pattern must contain only finite numbers")
        return value


class TimedMatch(Match):
    start_time: str
    end_time: str
    start_timestamp: int
    end_timestamp: int
    continuation_start_time: Optional[str] = None
    continuation_end_time: Optional[str] = None


class PatternSearchDebug(BaseModel):
    actual_historical_days: float
    requested_days: int
    pattern_range: str
    historical_range: str
    window_size: int


class PatternSearchResponse(BaseModel):
    symbol: str
    interval: Interval
    pattern_length: int
    threshold: float
    total_data_points: int
    total_matches: int
    matches: list[TimedMatch]
    search_period: TimeRange
    truncated: bool
    debug: PatternSearchDebug


class TrendAnalysisRequest(BaseModel):
    symbol: str = Field(pattern=SYMBOL_PATTERN)
    interval: Interval
    analysis_hours: int = Field(default=6, ge=1, le=24)


class TrendMatch(TimedMatch):
    trend_pattern: list[float]
    continuation_trend_pattern: list[float]
    stats: Optional[TrendStats] = None


class TrendAnalysisResponse(BaseModel):
    symbol: str
    interval: Interval
    analysis_hours: int
    recent_data: list[float]
    recent_trend_pattern: list[float]
    recent_stats: Optional[TrendStats] = None
    yearly_data_points: int
    yearly_pattern_length: int
    recent_pattern_length: int
    total_matches: int
    matches: list[TrendMatch]
    analysis_time: str
    truncated: bool
