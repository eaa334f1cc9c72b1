"""
Portfolios - Backend API
Multi-user portfolio accounting: lots, cost basis, corporate actions and performance
"""

import time
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import engine
from app.core.errors import register_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.core.rate_limit import limiter
from app.models import Base

setup_logging()
logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        # Skip health check logs to reduce noise
        if request.url.path != "/health":
            message = (
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"in {duration_ms:.1f}ms"
            )
            if response.status_code >= 500:
                logger.error(message)
            elif response.status_code >= 400:
                logger.warning(message)
            elif duration_ms > 1000:
                logger.warning(f"Slow request: {message}")
            else:
                logger.debug(message)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME} (env={settings.APP_ENV}, debug={settings.DEBUG})")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    scheduler = None
    if settings.RUN_SCHEDULER_IN_PROCESS:
        from app.tasks.scheduler import build_scheduler

        scheduler = build_scheduler()
        await scheduler.start()

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    if scheduler is not None:
        await scheduler.stop()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Portfolio accounting API: transactions, tax lots, corporate actions and performance",
    version="1.0.0",
    # Only expose OpenAPI in debug mode
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json" if settings.DEBUG else None,
    docs_url=f"{settings.API_V1_PREFIX}/docs" if settings.DEBUG else None,
    redoc_url=f"{settings.API_V1_PREFIX}/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "Internal"},
    )


# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware with restricted methods and headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.CORS_ALLOWED_METHODS,
    allow_headers=settings.CORS_ALLOWED_HEADERS,
    max_age=600,  # Cache preflight for 10 minutes
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/health")
async def health_check():
    """Health check endpoint with DB and Redis connectivity."""
    status = {"app": settings.APP_NAME, "status": "healthy"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        status["database"] = "ok"
    except Exception as e:
        logger.warning(f"Health check: database unreachable: {e}")
        status["database"] = "error"
        status["status"] = "degraded"

    try:
        r = aioredis.from_url(settings.REDIS_URL, socket_timeout=2)
        try:
            await r.ping()
        finally:
            await r.aclose()
        status["redis"] = "ok"
    except Exception as e:
        logger.warning(f"Health check: redis unreachable: {e}")
        status["redis"] = "error"
        status["status"] = "degraded"

    return status
