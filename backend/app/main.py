"""
ConstructAI BOQ API v1.0
FastAPI backend for quantity aggregation, valuation and payment certificates.
Sessions are held in process memory; there is no database.
"""
import sys
import time
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.deps import get_registry
from app.services import config
from app.services.logging_config import setup_logging
from app.services.middleware import RequestTimingMiddleware
from app.services.perf_monitor import tracker as perf_tracker
from app.services.session_store import SessionRegistry

setup_logging(level=config.LOG_LEVEL, json_output=config.LOG_JSON)
logger = logging.getLogger("constructai-api")

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"ConstructAI BOQ API {config.APP_VERSION} starting (downloads -> {config.DOWNLOAD_DIR})")
    yield
    logger.info("ConstructAI BOQ API shutting down")


app = FastAPI(
    title="ConstructAI BOQ API",
    version=config.APP_VERSION,
    description="Bill of Quantities aggregation, valuation and interim payment certificates",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS — restricted to allowed origins from env
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
# Request timing + X-Request-ID must be outermost so it wraps all other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from app.api.session_routes import router as session_router
from app.api.report_routes import router as report_router
from app.api.wallet_routes import router as wallet_router

app.include_router(session_router)
app.include_router(report_router)
app.include_router(wallet_router)


@app.get("/health")
async def health_check(registry: SessionRegistry = Depends(get_registry)):
    return {
        "status": "active",
        "version": config.APP_VERSION,
        "sessions": len(registry),
    }


@app.get("/metrics")
async def metrics():
    """
    Performance metrics endpoint.

    Recompute throughput, per-stage durations and error counts from the
    in-process PerformanceTracker singleton, plus process memory.
    """
    uptime_seconds = round(time.monotonic() - _PROCESS_START, 1)

    memory_mb: float = 0.0
    try:
        import resource  # Unix only
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is in kilobytes on Linux, bytes on macOS
        if sys.platform == "darwin":
            memory_mb = round(usage.ru_maxrss / (1024 * 1024), 2)
        else:
            memory_mb = round(usage.ru_maxrss / 1024, 2)
    except ImportError:
        memory_mb = 0.0

    return {
        "uptime_seconds": uptime_seconds,
        "memory_usage_mb": memory_mb,
        **perf_tracker.get_metrics(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
