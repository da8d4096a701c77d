import time
import threading
import logging
from typing import Optional

from config import get_settings

logger = logging.getLogger(__name__)


class TokenBucketRateLimiter:
    """Token bucket rate limiter for API calls, shared across threads."""

    def __init__(self, max_tokens: int, refill_rate: float, refill_interval: float = 1.0):
        """
        Args:
            max_tokens: Maximum tokens in the bucket
            refill_rate: Tokens added per refill interval
            refill_interval: Seconds between refills
        """
        self.max_tokens = max_tokens
        self.tokens = max_tokens
        self.refill_rate = refill_rate
        self.refill_interval = refill_interval
        self.last_refill = time.monotonic()
        self.lock = threading.Lock()

    def _refill(self):
        now = time.monotonic()
        elapsed = now - self.last_refill
        tokens_to_add = elapsed / self.refill_interval * self.refill_rate
        self.tokens = min(self.max_tokens, self.tokens + tokens_to_add)
        self.last_refill = now

    def acquire(
        self,
        tokens: int = 1,
        timeout: float = 60.0,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """Acquire tokens, blocking until available, timeout or cancellation."""
        deadline = time.monotonic() + timeout
        while True:
            with self.lock:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return True
            if time.monotonic() >= deadline:
                logger.warning(f"Rate limiter timeout waiting for {tokens} tokens")
                return False
            if cancel_event is not None:
                if cancel_event.wait(0.05):
                    return False
            else:
                time.sleep(0.05)

    def wait(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """Wait for one token to be available."""
        return self.acquire(1, cancel_event=cancel_event)


def _provider_limiter() -> TokenBucketRateLimiter:
    rate = get_settings().provider_max_requests_per_second
    return TokenBucketRateLimiter(
        max_tokens=max(int(rate), 1),
        refill_rate=rate,
        refill_interval=1.0,
    )


# Process-wide budget for the candle provider, shared by every retrieval
binance_rate_limiter = _provider_limiter()
