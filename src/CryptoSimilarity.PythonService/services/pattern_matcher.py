"""
Sliding-window shape search over a long price series.

Every window of ``window_size`` points is scored against the query pattern
with a weighted composite:

    score = 0.4 * shape + 0.3 * |correlation| + 0.2 * |cosine| + 0.1 * trend

Both sides are resampled to ``min(len(pattern), 50)`` points and min-max
normalized before scoring. Correlation and cosine are taken in absolute value,
so a vertically mirrored window scores like an identical one.

Windows are scored in numpy blocks; the scan is exhaustive (step 1) and
overlapping windows are all reported. The threshold applies to the raw
score; reported similarities are rounded to 4 decimals.
"""

import numpy as np
import logging
from numpy.lib.stride_tricks import sliding_window_view

from models.patterns import Match
from services.metrics import (
    cosine_rows, pearson_rows, shape_similarity_rows, trend_similarity_rows,
)
from services.normalizer import (
    as_series, normalize_rows_to_range, resample_rows, zscore_rows,
)

logger = logging.getLogger(__name__)

MAX_COMPARISON_POINTS = 50
SHAPE_WEIGHT = 0.4
CORRELATION_WEIGHT = 0.3
COSINE_WEIGHT = 0.2
TREND_WEIGHT = 0.1

_BLOCK_ROWS = 4096


class PatternMatcher:
    """Scores windows of a haystack series against one query pattern."""

    def __init__(self, pattern):
        self.pattern = as_series(pattern)
        self.points = min(self.pattern.size, MAX_COMPARISON_POINTS)

        if self.pattern.size:
            resampled = resample_rows(self.pattern[np.newaxis, :], self.points)
            self._normalized = normalize_rows_to_range(resampled)[0]
            self._standardized = zscore_rows(self._normalized[np.newaxis, :])[0]

    def score_windows(self, windows: np.ndarray) -> np.ndarray:
        """Composite similarity for each row of a 2-D block of windows."""
        if self.pattern.size == 0 or windows.size == 0:
            return np.zeros(windows.shape[0])

        normalized = normalize_rows_to_range(resample_rows(windows, self.points))
        shape = shape_similarity_rows(normalized, self._normalized)

        standardized = zscore_rows(normalized)
        correlation = np.abs(pearson_rows(standardized, self._standardized))
        cos = np.abs(cosine_rows(standardized, self._standardized))

        trend = trend_similarity_rows(normalized, self._normalized)

        return (
            SHAPE_WEIGHT * shape
            + CORRELATION_WEIGHT * correlation
            + COSINE_WEIGHT * cos
            + TREND_WEIGHT * trend
        )

    def similarity(self, window) -> float:
        values = as_series(window)
        if self.pattern.size == 0 or values.size == 0:
            return 0.0
        return float(self.score_windows(values[np.newaxis, :])[0])

    def find_matches(
        self,
        historical_data,
        window_size: int,
        threshold: float = 0.75,
        max_matches: int = 10,
        continuation_length: int = 30,
    ) -> list[Match]:
        """Ranked matches, best first; ties keep scan order."""
        data = as_series(historical_data)
        if self.pattern.size == 0 or window_size < 1 or data.size < window_size or max_matches < 1:
            return []

        continuation_length = max(continuation_length, 0)
        windows = sliding_window_view(data, window_size)
        matches: list[Match] = []

        for block_start in range(0, windows.shape[0], _BLOCK_ROWS):
            block = windows[block_start:block_start + _BLOCK_ROWS]
            scores = self.score_windows(block)

            for offset in np.flatnonzero(scores >= threshold):
                start = block_start + int(offset)
                continuation_start = start + window_size
                continuation_end = min(continuation_start + continuation_length, data.size)

                matches.append(Match(
                    start_index=start,
                    end_index=start + window_size - 1,
                    similarity=_reported_score(scores[offset], threshold),
                    data=data[start:continuation_start].tolist(),
                    continuation=data[continuation_start:continuation_end].tolist(),
                    continuation_start_index=continuation_start,
                    continuation_end_index=continuation_end - 1,
                ))

        logger.debug(
            f"Scanned {windows.shape[0]} windows of {window_size} points, "
            f"{len(matches)} at or above {threshold}"
        )

        # sorted() is stable with reverse=True, so equal scores stay in scan order
        ranked = sorted(matches, key=lambda m: m.similarity, reverse=True)
        return ranked[:max_matches]


def _reported_score(score: float, threshold: float) -> float:
    """Score rounded to 4 decimals, kept within [threshold, 1]."""
    return min(max(round(float(score), 4), threshold, 0.0), 1.0)


def pattern_similarity(pattern, window) -> float:
    """Composite similarity of a single window against ``pattern``."""
    return PatternMatcher(pattern).similarity(window)


def find_pattern_matches(
    pattern,
    historical_data,
    window_size: int = 50,
    threshold: float = 0.75,
    max_matches: int = 10,
    continuation_length: int = 30,
) -> list[Match]:
    return PatternMatcher(pattern).find_matches(
        historical_data, window_size, threshold, max_matches, continuation_length,
    )
