"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check

# ── Messaging ──
from backend.app.messaging.dispatcher import build_dispatcher

# ── API routers ──
from backend.app.api.v1.messages import router as messages_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the dispatcher on startup, release its HTTP client on shutdown."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    app.state.dispatcher = build_dispatcher(settings, http_client=http_client)
    logger.info(
        "Channels registered: %s",
        [c.value for c in app.state.dispatcher.registered_channels],
    )
    yield
    await app.state.dispatcher.aclose()
    logger.info("Shutting down %s", settings.APP_NAME)


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Multi-channel message dispatcher. Sends one message to a set of "
        "recipients over email (Brevo) and WhatsApp concurrently and "
        "reports per-channel and aggregate outcomes."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (order matters — outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(messages_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "modules": ["messaging"],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Deep health probe — provider configuration and dispatcher wiring."""
    report = await run_health_check(getattr(app.state, "dispatcher", None))
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness():
    """Kubernetes readiness probe — can we serve traffic?"""
    report = await run_health_check(getattr(app.state, "dispatcher", None))
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
