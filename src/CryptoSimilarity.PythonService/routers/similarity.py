"""Window-vs-window similarity endpoint."""

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from config import get_settings
from models.market_data import Interval, SYMBOL_PATTERN
from models.similarity import AnalyzeResponse, SimilarityMetrics
from routers.dependencies import call_provider, get_cache
from routers.market_data import klines_client
from services.binance_client import closes_from_klines
from services.similarity import compare, slice_lagged_window
from utils.cache import TTLCache, cache_key

router = APIRouter()
logger = logging.getLogger(__name__)

# 5 days of 15m candles
DEFAULT_LAG = 480


@router.get("/analyze", response_model=AnalyzeResponse)
async def analyze(
    symbol: str = Query(..., pattern=SYMBOL_PATTERN),
    interval: Interval = Query(...),
    window: int = Query(default=60, ge=10, le=200),
    lag: int = Query(default=DEFAULT_LAG, ge=1, le=800),
    cache: TTLCache = Depends(get_cache),
):
    """Compare the latest ``window`` closes with the window ``lag`` candles earlier."""
    key = cache_key("analyze", symbol, interval.value, window, lag)
    cached = cache.get(key)
    if cached is not None:
        return cached

    closes = await call_provider(
        lambda: closes_from_klines(klines_client.fetch_klines(symbol, interval.value, limit=1000))
    )

    if len(closes) < window * 2:
        raise HTTPException(status_code=400, detail="Not enough data for the requested window")

    current_window = closes[-window:]
    earlier_window = slice_lagged_window(closes, window, lag)
    if len(earlier_window) < window:
        raise HTTPException(status_code=400, detail="Not enough data before the lagged window")

    similarity = compare(current_window, earlier_window)
    logger.info(
        f"Analyze {symbol} {interval.value} window={window}: "
        f"corr={similarity.correlation} cos={similarity.cosine}"
    )

    result = AnalyzeResponse(
        symbol=symbol,
        interval=interval,
        window=window,
        lag=lag,
        ok=similarity.is_similar,
        metrics=SimilarityMetrics(corr=similarity.correlation, cos=similarity.cosine),
    )
    cache.set(key, result, get_settings().cache_ttl_analyze)
    return result
