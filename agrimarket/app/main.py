import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.app.api import admin, conversations, orders, products
from agrimarket.app.api.deps import get_session
from agrimarket.app.core.database import async_session, engine
from agrimarket.app.core.auth import require_admin_token
from agrimarket.app.core.logging import setup_logging, get_logger
from agrimarket.app.core.settings import get_settings
from agrimarket.app.core.metrics import PrometheusMiddleware, get_metrics_response
from agrimarket.app.services.maintenance import run_maintenance

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# JSON logs in production
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
)


async def _daily_scheduler():
    """Background task: run maintenance once a day at MAINTENANCE_HOUR_UTC."""
    while True:
        try:
            now = datetime.now(tz=timezone.utc)
            target = now.replace(hour=settings.MAINTENANCE_HOUR_UTC, minute=0, second=0, microsecond=0)
            if now >= target:
                target += timedelta(days=1)
            wait_secs = (target - now).total_seconds()
            logger.info("Daily scheduler: sleeping", next_run=target.isoformat(), wait_seconds=int(wait_secs))
            await asyncio.sleep(wait_secs)
            await run_maintenance(async_session)
        except Exception as e:
            logger.error("Daily scheduler: unexpected error", error=str(e))
            await asyncio.sleep(60)  # Wait before retrying


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: start the maintenance scheduler
    - Shutdown: stop it and dispose of the connection pool
    """
    logger.info("Application starting up", version="1.0.0")
    scheduler_task = asyncio.create_task(_daily_scheduler())
    yield
    scheduler_task.cancel()
    logger.info("Application shutting down")
    await engine.dispose()


app = FastAPI(title="AgriMarket Backend", lifespan=lifespan)

ALLOWED_ORIGINS = settings.allowed_origins_list
logger.info("CORS configuration", allowed_origins=ALLOWED_ORIGINS, is_production=settings.is_production)
if not ALLOWED_ORIGINS:
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
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Metrics middleware after CORS so it sees the final status code
app.add_middleware(PrometheusMiddleware)


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError):
    # Reached when lock contention outlasted every retry, or the database is down
    logger.error("Database error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Database temporarily unavailable, try again"})


app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(products.router, prefix="/products", tags=["products"])
app.include_router(conversations.router, prefix="/conversations", tags=["conversations"])
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
    """Health check endpoint for monitoring and orchestration."""
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
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
    """
    return get_metrics_response(openmetrics=openmetrics)
