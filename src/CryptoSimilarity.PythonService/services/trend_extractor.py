"""
Movement-shape extraction from raw prices.

A trend pattern is the series of period-over-period fractional changes,
divided by the series' own 95th-percentile absolute change and clamped to
[-2, 2]. Normalizing against the series itself makes shapes comparable
across assets and periods with very different volatility.
"""

import numpy as np
import logging
from typing import Optional

from models.patterns import TrendStats
from services.normalizer import as_series

logger = logging.getLogger(__name__)

PERCENTILE = 0.95
MIN_NORMALIZATION_FACTOR = 0.005  # 0.5% floor keeps quiet periods from amplifying noise
CLAMP_LIMIT = 2.0
SIDEWAYS_BAND_PERCENT = 0.1


def _fractional_changes(prices: np.ndarray) -> np.ndarray:
    previous = prices[:-1]
    delta = np.diff(prices)
    # A zero previous price has no defined relative change; treat it as flat.
    safe_previous = np.where(previous == 0, 1.0, previous)
    return np.where(previous == 0, 0.0, delta / safe_previous)


def normalization_factor(changes: np.ndarray) -> float:
    """Nearest-rank 95th percentile of ``|changes|``, floored at 0.5%."""
    if changes.size == 0:
        return MIN_NORMALIZATION_FACTOR
    ordered = np.sort(np.abs(changes))
    percentile = ordered[int(np.floor(ordered.size * PERCENTILE))]
    return max(float(percentile), MIN_NORMALIZATION_FACTOR)


def extract_trend_pattern(prices) -> list[float]:
    """Length ``N - 1`` trend pattern; empty for fewer than two prices."""
    values = as_series(prices)
    if values.size < 2:
        return []

    changes = _fractional_changes(values)
    factor = normalization_factor(changes)
    pattern = np.clip(changes / factor, -CLAMP_LIMIT, CLAMP_LIMIT)

    logger.debug(
        f"Trend normalization: factor={factor * 100:.3f}%, "
        f"range=[{pattern.min():.2f}, {pattern.max():.2f}]"
    )
    return pattern.tolist()


def trend_stats(prices) -> Optional[TrendStats]:
    """Summary of a price window's movement, in percent."""
    values = as_series(prices)
    if values.size < 2:
        return None

    changes = _fractional_changes(values) * 100
    up_moves = int((changes > SIDEWAYS_BAND_PERCENT).sum())
    down_moves = int((changes < -SIDEWAYS_BAND_PERCENT).sum())

    first = values[0]
    total_change = (values[-1] - first) / first * 100 if first != 0 else 0.0

    return TrendStats(
        total_change=float(total_change),
        volatility=float(np.sqrt(np.mean(changes ** 2))),
        up_moves=up_moves,
        down_moves=down_moves,
        sideways_moves=int(changes.size - up_moves - down_moves),
        total_moves=int(changes.size),
        avg_change=float(changes.mean()),
    )
