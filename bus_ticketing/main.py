"""
Main FastAPI application
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import time
from prometheus_client import make_asgi_app
import uuid

from bus_ticketing.config import settings
from bus_ticketing.core.database import init_db, close_db
from bus_ticketing.core.exceptions import BusTicketingException
from bus_ticketing.core.logging import setup_logging
from bus_ticketing.core.metrics import REQUEST_COUNT, REQUEST_DURATION
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.core.redis import init_redis, close_redis
from bus_ticketing.schemas.response import ErrorDetail, ErrorResponse
from bus_ticketing.api.v1.api import api_router

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()
    logger.info("Database connection established")

    await init_redis()

    app.state.notification_guard.start()
    logger.info("Notification guard sweeper started")

    yield

    # Shutdown
    logger.info("Shutting down application")

    await app.state.notification_guard.stop()

    await close_redis()

    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Bus ticket booking payments and e-tickets",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan
)

# Process-local notification guard; caches live in Redis
app.state.notification_guard = NotificationGuard(
    dedup_window=settings.NOTIFICATION_DEDUP_WINDOW_SECONDS,
    lock_ttl=settings.NOTIFICATION_LOCK_TTL_SECONDS,
    sweep_interval=settings.NOTIFICATION_SWEEP_INTERVAL_SECONDS
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request tracking middleware
@app.middleware("http")
async def track_requests(request: Request, call_next):
    """
    Tag the request with an id and record count and latency per route
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    # Label by route template, not the raw path
    route = request.scope.get("route")
    endpoint = getattr(route, "path", None) or "unmatched"
    REQUEST_COUNT.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
    REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(elapsed)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    return response


# Exception handlers
@app.exception_handler(BusTicketingException)
async def application_error_handler(request: Request, exc: BusTicketingException):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"request_id": getattr(request.state, "request_id", None)})
    body = ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message, details=exc.details))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    logger.error(f"Internal server error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An internal server error occurred"
            }
        }
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.APP_ENV,
        "api_docs": "/docs" if settings.DEBUG else None
    }


app.include_router(api_router, prefix=settings.API_PREFIX)

# Mount Prometheus metrics endpoint
if settings.PROMETHEUS_ENABLED:
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bus_ticketing.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
