"""
FastAPI Application Entry Point.

This is the main application file for the Ride Dispatch Backend.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from redis.exceptions import RedisError
from dispatch_backend.app.core.config import settings
from dispatch_backend.app.core.redis_client import get_redis
from dispatch_backend.app.api.v1.router import router as api_v1_router
from dispatch_backend.app.db.session import engine, Base
from dispatch_backend.app.core.observability import ObservabilityMiddleware, configure_logging, logger
from dispatch_backend.app.core.exceptions import (
    AppException,
    STORAGE_ERRORS,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    storage_exception_handler,
    generic_exception_handler
)
from fastapi import HTTPException

# Import models to ensure they are registered with Base
from dispatch_backend.app.models.user import User  # noqa: F401
from dispatch_backend.app.models.audit_log import AuditLog  # noqa: F401
from dispatch_backend.app.models.group import Group, GroupMember  # noqa: F401
from dispatch_backend.app.models.group_invite import GroupInvite  # noqa: F401
from dispatch_backend.app.models.ride import Ride  # noqa: F401
from dispatch_backend.app.models.ride_group_share import RideGroupShare  # noqa: F401
from dispatch_backend.app.models.ride_claim import RideClaim  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    3. Disposes the connection pool on shutdown.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("startup complete", extra={"version": settings.app_version, "commit": settings.app_commit})
    yield
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    description="Ride assignment, sharing and claiming for dispatch teams",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
for storage_error in STORAGE_ERRORS:
    app.add_exception_handler(storage_error, storage_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis=Depends(get_redis)):
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    try:
        redis_ok = bool(await redis.ping())
    except RedisError:
        redis_ok = False

    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "redis": "ok" if redis_ok else "unavailable",
    }


@app.get("/version", tags=["Health"])
async def version():
    """Build information of the running service."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "commit": settings.app_commit,
        "buildTime": settings.app_build_time,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dispatch_backend.app.main:app", host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
