"""
Retry with exponential backoff for transient provider failures.

The policy is a plain value object; ``call_with_retry`` applies it to any
callable through tenacity, so backoff timing stays out of the fetch logic.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryCancelled(Exception):
    """Raised when the cancel event fires during a backoff sleep."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5  # seconds before the first retry
    backoff_multiplier: float = 2.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            backoff_multiplier=settings.retry_backoff_multiplier,
        )


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> T:
    """Call ``fn`` until it succeeds or the attempt budget is spent.

    Only exceptions in ``retry_on`` are retried; anything else propagates
    immediately. After the final attempt the last error is re-raised.
    Setting ``cancel_event`` interrupts a backoff sleep with
    :class:`RetryCancelled` and stops further attempts.
    """

    def _sleep(seconds: float) -> None:
        if cancel_event is None:
            (sleep or time.sleep)(seconds)
            return
        if cancel_event.wait(seconds):
            raise RetryCancelled("Retry cancelled during backoff")

    stop = stop_after_attempt(max(policy.max_attempts, 1))
    if cancel_event is not None:
        stop = stop | stop_when_event_set(cancel_event)

    retrying = Retrying(
        retry=retry_if_exception_type(retry_on),
        stop=stop,
        wait=wait_exponential(multiplier=policy.base_delay, exp_base=policy.backoff_multiplier),
        sleep=_sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(fn)