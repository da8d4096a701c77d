"""Ephemeral per-call value types used by the chunked retriever."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

# Abort only when nothing has been collected and more than this many chunks
# in a row have failed.
MAX_CONSECUTIVE_FAILURES = 5


@dataclass(frozen=True)
class ChunkRequest:
    index: int
    start_time: int  # epoch ms, inclusive
    end_time: int  # epoch ms, inclusive


class ChunkErrorKind(str, Enum):
    TRANSIENT = "transient"  # timeouts / connection errors after retries
    PROVIDER = "provider"  # non-2xx or unparseable body
    EMPTY = "empty"  # valid payload without candles


@dataclass(frozen=True)
class ChunkOk:
    closes: list[float]
    first_open_time: int  # epoch ms of the first returned candle
    last_open_time: int


@dataclass(frozen=True)
class ChunkErr:
    kind: ChunkErrorKind
    message: str


ChunkOutcome = Union[ChunkOk, ChunkErr]


@dataclass
class RetrievalState:
    chunks_attempted: int = 0
    chunks_succeeded: int = 0
    consecutive_failures: int = 0
    points_collected: int = 0
    covered_start: Optional[int] = None  # open time of the first collected candle
    covered_end: Optional[int] = None  # open time of the last collected candle
    failures: list[ChunkErr] = field(default_factory=list)

    @property
    def chunks_failed(self) -> int:
        return self.chunks_attempted - self.chunks_succeeded

    def record(self, outcome: ChunkOutcome) -> None:
        self.chunks_attempted += 1
        if isinstance(outcome, ChunkOk):
            self.chunks_succeeded += 1
            self.consecutive_failures = 0
            self.points_collected += len(outcome.closes)
            if self.covered_start is None:
                self.covered_start = outcome.first_open_time
            self.covered_end = outcome.last_open_time
        else:
            self.consecutive_failures += 1
            self.failures.append(outcome)

    def failure_summary(self) -> str:
        """Failure counts by kind, e.g. ``"provider x4, empty x2"``."""
        counts = Counter(f.kind.value for f in self.failures)
        return ", ".join(f"{kind} x{count}" for kind, count in counts.most_common())


def should_abort(state: RetrievalState) -> bool:
    """True when the provider looks unreachable rather than merely flaky."""
    return state.points_collected == 0 and state.consecutive_failures > MAX_CONSECUTIVE_FAILURES
