"""Pattern search and trend analysis endpoints."""

from fastapi import APIRouter, HTTPException
import asyncio
import logging
import time
from datetime import datetime, timezone

from models.market_data import TimeRange, interval_ms, ms_to_iso
from models.patterns import (
    Match, PatternSearchDebug, PatternSearchRequest, PatternSearchResponse,
    TimedMatch, TrendAnalysisRequest, TrendAnalysisResponse, TrendMatch,
)
from routers.dependencies import call_provider, retrieve_history
from routers.market_data import klines_client, retriever
from services.binance_client import closes_from_klines
from services.chunked_retriever import recent_span
from services.pattern_matcher import find_pattern_matches
from services.trend_extractor import extract_trend_pattern, trend_stats

router = APIRouter()
logger = logging.getLogger(__name__)

MIN_HISTORICAL_POINTS = 100
MIN_RECENT_POINTS = 10
MIN_WINDOW_SIZE = 20

TREND_THRESHOLD = 0.65
TREND_MAX_MATCHES = 8
TREND_MAX_CONTINUATION = 30


def _timed(match: Match, origin_ms: int, step_ms: int) -> TimedMatch:
    """Attach wall-clock times, assuming one candle per index from ``origin_ms``."""
    start_ts = origin_ms + match.start_index * step_ms
    end_ts = origin_ms + match.end_index * step_ms
    fields = match.model_dump()
    if match.continuation:
        fields["continuation_start_time"] = ms_to_iso(origin_ms + match.continuation_start_index * step_ms)
        fields["continuation_end_time"] = ms_to_iso(origin_ms + match.continuation_end_index * step_ms)
    return TimedMatch(
        **fields,
        start_time=ms_to_iso(start_ts),
        end_time=ms_to_iso(end_ts),
        start_timestamp=start_ts,
        end_timestamp=end_ts,
    )


@router.post("/search", response_model=PatternSearchResponse)
async def search_patterns(request: PatternSearchRequest):
    """Find historical windows shaped like the supplied pattern."""
    interval = request.interval.value
    logger.info(
        f"Pattern search: {request.symbol} {interval}, "
        f"pattern length {len(request.pattern)}, threshold {request.threshold}"
    )

    start_ms, end_ms = recent_span()
    retrieval = await retrieve_history(retriever, request.symbol, interval, start_ms, end_ms)
    closes = retrieval.closes

    if len(closes) < MIN_HISTORICAL_POINTS:
        raise HTTPException(status_code=400, detail="Not enough historical data")

    window_size = max(len(request.pattern), MIN_WINDOW_SIZE)
    matches = await asyncio.get_running_loop().run_in_executor(
        None,
        lambda: find_pattern_matches(
            request.pattern,
            closes,
            window_size,
            request.threshold,
            request.max_matches,
            request.continuation_length,
        ),
    )
    logger.info(f"{len(matches)} pattern matches in {len(closes)} data points")

    step = interval_ms(interval)
    coverage = retrieval.coverage
    return PatternSearchResponse(
        symbol=request.symbol,
        interval=request.interval,
        pattern_length=len(request.pattern),
        threshold=request.threshold,
        total_data_points=len(closes),
        total_matches=len(matches),
        matches=[_timed(m, coverage.covered_start, step) for m in matches],
        search_period=TimeRange(
            start_time=ms_to_iso(coverage.covered_start),
            end_time=ms_to_iso(coverage.covered_end),
        ),
        truncated=coverage.truncated,
        debug=PatternSearchDebug(
            actual_historical_days=coverage.covered_days,
            requested_days=round((end_ms - start_ms) / (24 * 60 * 60 * 1000)),
            pattern_range=f"{min(request.pattern):.2f} - {max(request.pattern):.2f}",
            historical_range=f"{min(closes):.2f} - {max(closes):.2f}",
            window_size=window_size,
        ),
    )


def _to_trend_match(match: Match, prices: list[float], origin_ms: int, step_ms: int) -> TrendMatch:
    """Map a match over trend indices back onto the underlying prices.

    Trend value ``i`` is the move from price ``i`` to price ``i + 1``, so a
    trend window ``[s, e]`` spans prices ``s .. e + 1``.
    """
    timed = _timed(match, origin_ms, step_ms)
    real_prices = prices[match.start_index:match.end_index + 2]
    real_continuation = prices[match.continuation_start_index + 1:match.continuation_end_index + 2]

    fields = timed.model_dump()
    fields.update(
        data=real_prices,
        continuation=real_continuation,
        end_time=ms_to_iso(origin_ms + (match.end_index + 1) * step_ms),
        end_timestamp=origin_ms + (match.end_index + 1) * step_ms,
    )
    return TrendMatch(
        **fields,
        trend_pattern=match.data,
        continuation_trend_pattern=match.continuation,
        stats=trend_stats(real_prices),
    )


@router.post("/trend-analysis", response_model=TrendAnalysisResponse)
async def trend_analysis(request: TrendAnalysisRequest):
    """Match the movement of the last few hours against the past year."""
    symbol = request.symbol
    interval = request.interval.value
    hours = request.analysis_hours

    end_ms = int(time.time() * 1000)
    recent_start = end_ms - hours * 60 * 60 * 1000
    recent = await call_provider(
        lambda: closes_from_klines(
            klines_client.fetch_klines(symbol, interval, start_ms=recent_start, end_ms=end_ms)
        )
    )
    if len(recent) < MIN_RECENT_POINTS:
        raise HTTPException(status_code=400, detail="Not enough recent data")

    # History stops where the recent window begins, so it cannot match itself
    history_start, history_end = recent_span(now_ms=recent_start)
    retrieval = await retrieve_history(retriever, symbol, interval, history_start, history_end)
    yearly = retrieval.closes
    if len(yearly) < MIN_HISTORICAL_POINTS:
        raise HTTPException(status_code=400, detail="Not enough historical data")

    recent_pattern = extract_trend_pattern(recent)
    yearly_pattern = extract_trend_pattern(yearly)
    logger.info(
        f"Trend analysis {symbol} {interval}: recent pattern {len(recent_pattern)}, "
        f"yearly pattern {len(yearly_pattern)}"
    )

    matches = await asyncio.get_running_loop().run_in_executor(
        None,
        lambda: find_pattern_matches(
            recent_pattern,
            yearly_pattern,
            len(recent_pattern),
            TREND_THRESHOLD,
            TREND_MAX_MATCHES,
            min(TREND_MAX_CONTINUATION, len(recent_pattern) // 2),
        ),
    )
    logger.info(f"{len(matches)} trend matches found")

    step = interval_ms(interval)
    origin = retrieval.coverage.covered_start
    return TrendAnalysisResponse(
        symbol=symbol,
        interval=request.interval,
        analysis_hours=hours,
        recent_data=recent,
        recent_trend_pattern=recent_pattern,
        recent_stats=trend_stats(recent),
        yearly_data_points=len(yearly),
        yearly_pattern_length=len(yearly_pattern),
        recent_pattern_length=len(recent_pattern),
        total_matches=len(matches),
        matches=[_to_trend_match(m, yearly, origin, step) for m in matches],
        analysis_time=datetime.now(timezone.utc).isoformat(),
        truncated=retrieval.coverage.truncated,
    )
