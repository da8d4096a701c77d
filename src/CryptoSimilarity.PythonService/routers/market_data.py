"""Market data API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
import logging
import time

from config import get_settings
from models.market_data import (
    Candle, HistoricalResponse, Interval, KlinesResponse, LiveChartResponse,
    SYMBOL_PATTERN, TimeRange, ms_to_iso,
)
from routers.dependencies import call_provider, get_cache, retrieve_history
from services.binance_client import BinanceKlinesClient, closes_from_klines, klines_to_frame
from services.chunked_retriever import ChunkedRetriever, recent_span
from utils.cache import TTLCache, cache_key, ttl_for_interval

router = APIRouter()
logger = logging.getLogger(__name__)

klines_client = BinanceKlinesClient()
retriever = ChunkedRetriever(client=klines_client)


@router.get("/klines", response_model=KlinesResponse)
async def get_klines(
    symbol: str = Query(..., pattern=SYMBOL_PATTERN),
    interval: Interval = Query(...),
    limit: int = Query(default=500, ge=1, le=1000),
    cache: TTLCache = Depends(get_cache),
):
    """Latest close prices for a symbol."""
    settings = get_settings()
    key = cache_key("klines", symbol, interval.value, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    closes = await call_provider(
        lambda: closes_from_klines(klines_client.fetch_klines(symbol, interval.value, limit=limit))
    )
    result = KlinesResponse(
        symbol=symbol,
        interval=interval,
        limit=limit,
        close_prices=closes,
    )
    cache.set(key, result, ttl_for_interval(interval, settings.cache_ttl_by_interval, settings.cache_ttl_default))
    return result


@router.get("/live-chart", response_model=LiveChartResponse)
async def get_live_chart(
    symbol: str = Query(..., pattern=SYMBOL_PATTERN),
    interval: Interval = Query(...),
    hours: int = Query(default=24, ge=1, le=168),
    cache: TTLCache = Depends(get_cache),
):
    """OHLCV candles for the last ``hours`` plus summary stats."""
    settings = get_settings()
    key = cache_key("live-chart", symbol, interval.value, hours)
    cached = cache.get(key)
    if cached is not None:
        return cached

    end_ms = int(time.time() * 1000)
    start_ms = end_ms - hours * 60 * 60 * 1000
    logger.info(f"Live chart: {symbol} {interval.value} last {hours}h")

    df = await call_provider(
        lambda: klines_to_frame(
            klines_client.fetch_klines(symbol, interval.value, start_ms=start_ms, end_ms=end_ms)
        )
    )

    chart_data = [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            time=ms_to_iso(int(row.timestamp)),
        )
        for row in df.itertuples(index=False)
    ]

    result = LiveChartResponse(
        symbol=symbol,
        interval=interval,
        hours=hours,
        data_points=len(chart_data),
        chart_data=chart_data,
        time_range=TimeRange(start_time=ms_to_iso(start_ms), end_time=ms_to_iso(end_ms)),
    )
    if not df.empty:
        first_close = float(df["close"].iloc[0])
        current = float(df["close"].iloc[-1])
        change = current - first_close
        result.current_price = current
        result.change = change
        result.change_percent = change / first_close * 100 if first_close else None
        result.high = float(df["high"].max())
        result.low = float(df["low"].min())
        result.volume = float(df["volume"].sum())

    cache.set(key, result, settings.cache_ttl_live_chart)
    return result


@router.get("/historical", response_model=HistoricalResponse)
async def get_historical(
    symbol: str = Query(..., pattern=SYMBOL_PATTERN),
    interval: Interval = Query(...),
    cache: TTLCache = Depends(get_cache),
):
    """One year of close prices assembled from provider chunks."""
    settings = get_settings()
    key = cache_key("historical", symbol, interval.value)
    cached = cache.get(key)
    if cached is not None:
        return cached

    start_ms, end_ms = recent_span()
    retrieval = await retrieve_history(retriever, symbol, interval.value, start_ms, end_ms)
    if not retrieval.closes:
        raise HTTPException(status_code=502, detail="Provider returned no historical data")

    coverage = retrieval.coverage
    result = HistoricalResponse(
        symbol=symbol,
        interval=interval,
        start_time=ms_to_iso(coverage.covered_start),
        end_time=ms_to_iso(coverage.covered_end),
        total_data_points=len(retrieval.closes),
        close_prices=retrieval.closes,
        coverage=coverage,
    )
    cache.set(key, result, ttl_for_interval(interval, settings.cache_ttl_by_interval, settings.cache_ttl_default))
    return result
