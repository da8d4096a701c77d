"""Similarity metrics over equal-length numeric sequences.

Invalid input (empty, unequal lengths, zero variance/magnitude) yields 0,
the "no relationship" sentinel, rather than an exception.
"""

import numpy as np

from services.normalizer import as_series


def pearson_rows(rows: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Product-moment correlation of every row against ``reference``."""
    dx = rows - rows.mean(axis=1, keepdims=True)
    dy = reference - reference.mean()
    numerator = (dx * dy).sum(axis=1)
    denominator = np.sqrt((dx * dx).sum(axis=1) * (dy * dy).sum())
    undefined = (denominator == 0) | (np.ptp(rows, axis=1) == 0) | (np.ptp(reference) == 0)
    return np.where(undefined, 0.0, numerator / np.where(undefined, 1.0, denominator))


def cosine_rows(rows: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Dot product over the product of magnitudes, per row."""
    denominator = np.sqrt((rows * rows).sum(axis=1)) * np.sqrt((reference * reference).sum())
    undefined = denominator == 0
    numerator = (rows * reference).sum(axis=1)
    return np.where(undefined, 0.0, numerator / np.where(undefined, 1.0, denominator))


def shape_similarity_rows(rows: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """``1 - mean absolute distance`` per row, floored at 0.

    Inputs are expected to be pre-normalized to [0, 1].
    """
    return np.maximum(0.0, 1.0 - np.abs(rows - reference).mean(axis=1))


def trend_similarity_rows(rows: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """Fraction of steps where the up/flat/down direction agrees, per row."""
    if rows.shape[1] < 3:
        return np.zeros(rows.shape[0])
    return (np.sign(np.diff(rows, axis=1)) == np.sign(np.diff(reference))).mean(axis=1)


def _pair(x, y):
    a, b = as_series(x), as_series(y)
    if a.size == 0 or a.size != b.size:
        return None
    return a[np.newaxis, :], b


def pearson(x, y) -> float:
    pair = _pair(x, y)
    if pair is None:
        return 0.0
    return float(pearson_rows(*pair)[0])


def cosine(x, y) -> float:
    pair = _pair(x, y)
    if pair is None:
        return 0.0
    return float(cosine_rows(*pair)[0])


def shape_similarity(a, b) -> float:
    pair = _pair(a, b)
    if pair is None:
        return 0.0
    return float(shape_similarity_rows(*pair)[0])


def trend_similarity(a, b) -> float:
    pair = _pair(a, b)
    if pair is None:
        return 0.0
    return float(trend_similarity_rows(*pair)[0])
