from pydantic import BaseModel

from models.market_data import Interval


class SimilarityResult(BaseModel):
    correlation: float
    cosine: float
    is_similar: bool


class SimilarityMetrics(BaseModel):
    corr: float
    cos: float


class AnalyzeResponse(BaseModel):
    symbol: str
    interval: Interval
    window: int
    lag: int  # candles between the two compared windows
    ok: bool
    metrics: SimilarityMetrics
