import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from consent_backend.app.api import admin, consents, policies
from consent_backend.app.api.deps import get_session
from consent_backend.app.core.auth import require_admin_token
from consent_backend.app.core.database import engine
from consent_backend.app.core.logging import setup_logging, get_logger, clear_request_context
from consent_backend.app.core.settings import get_settings
from consent_backend.app.core.metrics import PrometheusMiddleware, get_metrics_response
from consent_backend.app.services.notifications import WebhookNotifier, get_event_bus

APP_VERSION = "1.0.0"

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# Use JSON format in production
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    default_policy_version=settings.DEFAULT_POLICY_VERSION,
    webhook_enabled=bool(settings.CONSENT_WEBHOOK_URL),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: subscribe the webhook notifier if configured
    - Shutdown: unsubscribe it, dispose the engine
    """
    logger.info("Application starting up", version=APP_VERSION)
    unsubscribe = None
    if settings.CONSENT_WEBHOOK_URL:
        notifier = WebhookNotifier(settings.CONSENT_WEBHOOK_URL, timeout=settings.WEBHOOK_TIMEOUT)
        unsubscribe = get_event_bus().subscribe(notifier)
    yield
    if unsubscribe is not None:
        unsubscribe()
    logger.info("Application shutting down")
    await engine.dispose()


app = FastAPI(title="Consent Backend", version=APP_VERSION, lifespan=lifespan)

ALLOWED_ORIGINS = settings.allowed_origins_list
if not ALLOWED_ORIGINS:
    # In production, require ALLOWED_ORIGINS to be set
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    # Development fallback
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(PrometheusMiddleware)


@app.middleware("http")
async def reset_log_context(request: Request, call_next):
    """Start every request with empty structlog context (user_id is bound by auth)."""
    clear_request_context()
    return await call_next(request)


app.include_router(consents.router, prefix="/consents", tags=["consents"])
app.include_router(policies.router, prefix="/policies", tags=["policies"])
app.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_token)],
)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": APP_VERSION,
        "checks": {
            "database": "ok",
        }
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """
    Prometheus metrics endpoint.

    Args:
        openmetrics: If True, return OpenMetrics format

    Returns:
        Metrics in Prometheus or OpenMetrics format
    """
    return get_metrics_response(openmetrics=openmetrics)
