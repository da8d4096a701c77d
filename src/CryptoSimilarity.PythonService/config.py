from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # General
    app_name: str = "CryptoSimilarity Python Service"
    debug: bool = False

    # Binance klines provider
    binance_base_url: str = "https://api1.binance.com"
    user_agent: str = "crypto-similarity/1.0"
    request_timeout_seconds: float = 10.0
    klines_chunk_limit: int = 1000
    provider_max_requests_per_second: float = 10.0

    # Chunked retrieval
    chunk_delay_seconds: float = 0.15
    history_days: int = 365
    retrieval_deadline_seconds: float = 120.0
    max_chunks_by_interval: dict[str, int] = {
        "1m": 100,   # ~70 days
        "5m": 120,   # ~416 days
        "15m": 40,   # ~416 days
        "1h": 12,    # ~500 days
        "4h": 4,     # ~666 days
    }
    default_max_chunks: int = 50

    # Retry policy for transient provider failures
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_backoff_multiplier: float = 2.0

    # Response cache TTLs (seconds)
    cache_ttl_by_interval: dict[str, int] = {
        "1m": 30,
        "5m": 120,
        "15m": 300,
        "1h": 900,
        "4h": 1800,
    }
    cache_ttl_default: int = 300
    cache_ttl_live_chart: int = 60
    cache_ttl_analyze: int = 120

    model_config = {"env_file": ".env", "env_prefix": "CS_"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
