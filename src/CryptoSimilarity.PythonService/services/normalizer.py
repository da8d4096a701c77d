"""Series normalization helpers: z-score, min-max range and linear resampling.

Every operation has a row-wise form working on a 2-D block of equal-length
windows (used by the pattern matcher) and a 1-D form built on top of it, so
both paths produce bit-identical values. Empty input yields an empty array
instead of raising.
"""

import numpy as np


def as_series(series) -> np.ndarray:
    return np.asarray(series, dtype=float).ravel()


def zscore_rows(rows: np.ndarray) -> np.ndarray:
    """Standardize each row with the population standard deviation (divisor N).

    A constant row has no defined z-score; it maps to all zeros so that
    correlation and cosine fall back to their zero sentinel instead of
    propagating NaN.
    """
    flat = np.ptp(rows, axis=1, keepdims=True) == 0
    std = rows.std(axis=1, keepdims=True)
    centered = rows - rows.mean(axis=1, keepdims=True)
    return np.where(flat, 0.0, centered / np.where(flat, 1.0, std))


def normalize_rows_to_range(rows: np.ndarray) -> np.ndarray:
    """Scale each row into [0, 1]; a flat row maps to 0.5 everywhere."""
    low = rows.min(axis=1, keepdims=True)
    span = rows.max(axis=1, keepdims=True) - low
    flat = span == 0
    scaled = (rows - low) / np.where(flat, 1.0, span)
    return np.where(flat, 0.5, scaled)


def resample_rows(rows: np.ndarray, target_length: int) -> np.ndarray:
    """Linearly interpolate each row to ``target_length`` evenly spaced points."""
    n = rows.shape[1]
    if target_length == n:
        return rows.copy()
    if target_length == 1:
        return rows[:, :1].copy()
    positions = np.arange(target_length) * ((n - 1) / (target_length - 1))
    lower = np.floor(positions).astype(int)
    upper = np.minimum(np.ceil(positions).astype(int), n - 1)
    weight = positions - lower
    return rows[:, lower] * (1 - weight) + rows[:, upper] * weight


def zscore(series) -> np.ndarray:
    values = as_series(series)
    if values.size == 0:
        return values
    return zscore_rows(values[np.newaxis, :])[0]


def normalize_to_range(series) -> np.ndarray:
    values = as_series(series)
    if values.size == 0:
        return values
    return normalize_rows_to_range(values[np.newaxis, :])[0]


def resample(series, target_length: int) -> np.ndarray:
    values = as_series(series)
    if values.size == 0 or target_length < 1:
        return np.empty(0)
    return resample_rows(values[np.newaxis, :], target_length)[0]
