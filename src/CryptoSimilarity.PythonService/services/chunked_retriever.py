"""
Long-span close-price retrieval from a chunk-capped candle provider.

The requested span is split into provider-sized chunks, capped per interval
so fine intervals cannot explode the request count. Chunks are fetched
sequentially in time order. Each attempt is bounded by a timeout and
transient failures are retried with exponential backoff. A failed chunk
is logged and skipped. The call only fails outright when nothing has been
collected and more than five chunks in a row have failed.
"""

import logging
import math
import threading
import time
from typing import Optional

from config import get_settings
from models.market_data import CoverageInfo, DAY_MS, RetrievalResult, interval_ms
from models.retrieval import (
    ChunkErr, ChunkErrorKind, ChunkOk, ChunkOutcome, ChunkRequest,
    RetrievalState, should_abort,
)
from services.binance_client import (
    BinanceKlinesClient, ProviderError, TransientFetchError, timed_closes_from_klines,
)
from utils.retry import RetryCancelled, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

PROGRESS_LOG_EVERY = 5


class RetrievalAborted(Exception):
    """Provider looks unreachable: repeated failures and no data at all."""

    def __init__(self, message: str, state: RetrievalState):
        super().__init__(message)
        self.state = state


class RetrievalCancelled(Exception):
    """Caller cancelled the retrieval or its deadline passed."""


class ChunkedRetriever:
    """Assembles a long close-price series from bounded provider chunks."""

    def __init__(
        self,
        client: Optional[BinanceKlinesClient] = None,
        chunk_limit: Optional[int] = None,
        max_chunks_by_interval: Optional[dict[str, int]] = None,
        default_max_chunks: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        chunk_delay_seconds: Optional[float] = None,
        request_timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.client = client or BinanceKlinesClient()
        self.chunk_limit = chunk_limit or settings.klines_chunk_limit
        self.max_chunks_by_interval = (
            max_chunks_by_interval if max_chunks_by_interval is not None
            else settings.max_chunks_by_interval
        )
        self.default_max_chunks = default_max_chunks or settings.default_max_chunks
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.chunk_delay_seconds = (
            chunk_delay_seconds if chunk_delay_seconds is not None
            else settings.chunk_delay_seconds
        )
        self.request_timeout_seconds = request_timeout_seconds or settings.request_timeout_seconds

    def max_chunks_for(self, interval: str) -> int:
        return self.max_chunks_by_interval.get(interval, self.default_max_chunks)

    def plan_chunks(self, start_ms: int, end_ms: int, interval: str) -> tuple[list[ChunkRequest], int]:
        """Chunk bounds in time order plus the uncapped (ideal) chunk count."""
        step = interval_ms(interval)
        chunk_span = step * self.chunk_limit
        if end_ms <= start_ms:
            return [], 0

        ideal = math.ceil((end_ms - start_ms) / chunk_span)
        used = min(ideal, self.max_chunks_for(interval))

        chunks = []
        for i in range(used):
            chunk_start = start_ms + i * chunk_span
            chunk_end = min(chunk_start + chunk_span - step, end_ms)
            chunks.append(ChunkRequest(index=i, start_time=chunk_start, end_time=chunk_end))
        return chunks, ideal

    def fetch_series(
        self,
        symbol: str,
        interval: str,
        start_ms: int,
        end_ms: int,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> RetrievalResult:
        """Best-effort close series for ``[start_ms, end_ms]``.

        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                retrieval stops with :class:`RetrievalCancelled`.

        Raises:
            RetrievalAborted: nothing collected and more than five
                consecutive chunks failed.
            RetrievalCancelled: ``cancel_event`` set or ``deadline`` passed.
        """
        cancel_event = cancel_event or threading.Event()
        chunks, ideal = self.plan_chunks(start_ms, end_ms, interval)
        logger.info(
            f"{symbol} {interval}: fetching {len(chunks)}/{ideal} chunks "
            f"of up to {self.chunk_limit} candles"
        )

        closes: list[float] = []
        state = RetrievalState()

        for chunk in chunks:
            self._check_cancelled(cancel_event, deadline)

            outcome = self._fetch_chunk(symbol, interval, chunk, cancel_event, deadline)
            state.record(outcome)

            if isinstance(outcome, ChunkOk):
                closes.extend(outcome.closes)
                if chunk.index < len(chunks) - 1:
                    self._pause(cancel_event, deadline)
            else:
                logger.warning(
                    f"{symbol} chunk {chunk.index + 1}/{len(chunks)} skipped "
                    f"({outcome.kind.value}): {outcome.message}"
                )
                if should_abort(state):
                    logger.error(
                        f"{symbol}: {state.consecutive_failures} consecutive chunk failures "
                        f"with no data, aborting retrieval"
                    )
                    raise RetrievalAborted(
                        f"Provider unreachable for {symbol} {interval}: "
                        f"{state.consecutive_failures} consecutive chunk failures "
                        f"({state.failure_summary()})",
                        state,
                    )

            if (chunk.index + 1) % PROGRESS_LOG_EVERY == 0:
                logger.info(
                    f"{symbol}: {chunk.index + 1}/{len(chunks)} chunks processed, "
                    f"{len(closes)} data points"
                )

        logger.info(
            f"{symbol} {interval}: {len(closes)} data points from "
            f"{state.chunks_succeeded}/{len(chunks)} chunks"
        )
        return RetrievalResult(
            symbol=symbol,
            interval=interval,
            closes=closes,
            coverage=self._coverage(start_ms, end_ms, interval, chunks, ideal, state, len(closes)),
        )

    def _fetch_chunk(
        self,
        symbol: str,
        interval: str,
        chunk: ChunkRequest,
        cancel_event: threading.Event,
        deadline: Optional[float],
    ) -> ChunkOutcome:
        def attempt() -> list:
            self._check_cancelled(cancel_event, deadline)
            return self.client.fetch_klines(
                symbol,
                interval,
                start_ms=chunk.start_time,
                end_ms=chunk.end_time,
                limit=self.chunk_limit,
                timeout=self._attempt_timeout(deadline),
                cancel_event=cancel_event,
            )

        try:
            rows = call_with_retry(
                attempt,
                self.retry_policy,
                retry_on=(TransientFetchError,),
                cancel_event=cancel_event,
            )
            candles = timed_closes_from_klines(rows)
        except RetryCancelled as e:
            raise RetrievalCancelled(str(e)) from e
        except TransientFetchError as e:
            self._check_cancelled(cancel_event, deadline)
            return ChunkErr(ChunkErrorKind.TRANSIENT, str(e))
        except ProviderError as e:
            return ChunkErr(ChunkErrorKind.PROVIDER, str(e))

        if not candles:
            return ChunkErr(ChunkErrorKind.EMPTY, "No candles returned")
        return ChunkOk(
            closes=[close for _, close in candles],
            first_open_time=candles[0][0],
            last_open_time=candles[-1][0],
        )

    def _attempt_timeout(self, deadline: Optional[float]) -> float:
        if deadline is None:
            return self.request_timeout_seconds
        remaining = deadline - time.monotonic()
        return max(min(self.request_timeout_seconds, remaining), 0.001)

    def _pause(self, cancel_event: threading.Event, deadline: Optional[float]) -> None:
        if self.chunk_delay_seconds > 0 and cancel_event.wait(self.chunk_delay_seconds):
            self._check_cancelled(cancel_event, deadline)

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event, deadline: Optional[float]) -> None:
        if cancel_event.is_set():
            raise RetrievalCancelled("Retrieval cancelled by caller")
        if deadline is not None and time.monotonic() >= deadline:
            cancel_event.set()
            raise RetrievalCancelled("Retrieval deadline exceeded")

    def _coverage(
        self,
        start_ms: int,
        end_ms: int,
        interval: str,
        chunks: list[ChunkRequest],
        ideal: int,
        state: RetrievalState,
        data_points: int,
    ) -> CoverageInfo:
        # Actual candle bounds, not the planned span
        covered_start = state.covered_start if state.covered_start is not None else start_ms
        covered_end = state.covered_end if state.covered_end is not None else covered_start
        return CoverageInfo(
            requested_start=start_ms,
            requested_end=end_ms,
            covered_start=covered_start,
            covered_end=covered_end,
            ideal_chunks=ideal,
            chunks_used=len(chunks),
            chunks_succeeded=state.chunks_succeeded,
            chunks_failed=state.chunks_failed,
            data_points=data_points,
            truncated=len(chunks) < ideal,
            covered_days=round(data_points * interval_ms(interval) / DAY_MS, 2),
        )


def recent_span(history_days: Optional[int] = None, now_ms: Optional[int] = None) -> tuple[int, int]:
    """``(start_ms, end_ms)`` covering the last ``history_days`` days."""
    days = history_days or get_settings().history_days
    end_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return end_ms - days * DAY_MS, end_ms
