"""Similar / not-similar verdict for two equal-length price windows."""

from models.similarity import SimilarityResult
from services.metrics import cosine, pearson
from services.normalizer import as_series, zscore

# Fixed decision thresholds; callers needing another sensitivity should
# pre-scale their inputs or use their own predicate.
CORRELATION_THRESHOLD = 0.92
COSINE_THRESHOLD = 0.95


def is_similar(correlation: float, cosine_similarity: float) -> bool:
    return correlation >= CORRELATION_THRESHOLD or cosine_similarity >= COSINE_THRESHOLD


def compare(window_a, window_b) -> SimilarityResult:
    """Z-score both windows independently, then correlate them.

    Mismatched or empty windows produce an all-zero, not-similar result.
    """
    a, b = as_series(window_a), as_series(window_b)
    if a.size == 0 or a.size != b.size:
        return SimilarityResult(correlation=0.0, cosine=0.0, is_similar=False)

    za, zb = zscore(a), zscore(b)
    correlation = pearson(za, zb)
    cosine_similarity = cosine(za, zb)

    return SimilarityResult(
        correlation=round(correlation, 4),
        cosine=round(cosine_similarity, 4),
        is_similar=is_similar(correlation, cosine_similarity),
    )


def slice_lagged_window(series, window: int, lag: int) -> list[float]:
    """The ``window`` points that end ``lag`` points before the series end.

    Near the start of the series the slice is clipped and may be shorter
    than ``window``.
    """
    values = list(series)
    end = max(0, len(values) - lag)
    start = max(0, len(values) - lag - window)
    return values[start:end]
