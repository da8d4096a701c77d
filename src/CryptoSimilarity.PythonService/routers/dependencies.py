"""Shared FastAPI dependencies and provider-call adapters for the routers."""

from fastapi import HTTPException, Request
import asyncio
import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from config import get_settings
from models.market_data import RetrievalResult
from services.binance_client import ProviderError, TransientFetchError
from services.chunked_retriever import (
    ChunkedRetriever, RetrievalAborted, RetrievalCancelled,
)
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


async def call_provider(fn: Callable[[], T]) -> T:
    """Run a blocking provider call off the event loop, mapping failures to 502."""
    try:
        return await asyncio.get_running_loop().run_in_executor(None, fn)
    except (ProviderError, TransientFetchError) as e:
        logger.error(f"Provider call failed: {e}")
        raise HTTPException(status_code=502, detail=f"Upstream provider error: {e}")


async def retrieve_history(
    retriever: ChunkedRetriever,
    symbol: str,
    interval: str,
    start_ms: int,
    end_ms: int,
    deadline_seconds: Optional[float] = None,
) -> RetrievalResult:
    """Chunked retrieval under the request deadline.

    When the deadline expires the worker thread is told to stop through its
    cancel event, so no further chunks are requested after the 504.
    """
    timeout = deadline_seconds or get_settings().retrieval_deadline_seconds
    cancel_event = threading.Event()
    deadline = time.monotonic() + timeout

    future = asyncio.get_running_loop().run_in_executor(
        None,
        lambda: retriever.fetch_series(
            symbol, interval, start_ms, end_ms,
            cancel_event=cancel_event, deadline=deadline,
        ),
    )
    try:
        return await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError:
        cancel_event.set()
        raise HTTPException(status_code=504, detail="Historical data retrieval timed out")
    except RetrievalCancelled as e:
        raise HTTPException(status_code=504, detail=str(e))
    except RetrievalAborted as e:
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        cancel_event.set()
