from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager, suppress
import asyncio
import logging

from routers import market_data, similarity, patterns
from utils.cache import TTLCache

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CACHE_CLEANUP_SECONDS = 5 * 60


async def _cleanup_cache_periodically(cache: TTLCache):
    while True:
        await asyncio.sleep(CACHE_CLEANUP_SECONDS)
        cache.cleanup()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Crypto Similarity Python Service...")
    app.state.cache = TTLCache()
    cleanup_task = asyncio.create_task(_cleanup_cache_periodically(app.state.cache))
    yield
    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task
    logger.info("Shutting down Crypto Similarity Python Service...")


app = FastAPI(
    title="Crypto Similarity Python Service",
    description="Price window similarity, historical pattern search and trend matching API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(market_data.router, prefix="/api/market-data", tags=["Market Data"])
app.include_router(similarity.router, prefix="/api/similarity", tags=["Similarity"])
app.include_router(patterns.router, prefix="/api/patterns", tags=["Pattern Search"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "CryptoSimilarity.PythonService"}
