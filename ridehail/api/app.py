"""
FastAPI application factory.

* Builds the database gateway, Redis client and service container.
* Registers routes for trips, pending rides, drivers and admin.
* Starts / stops the background maintenance worker via lifespan events.
* Maps domain errors to HTTP status codes and applies rate limiting.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import redis.asyncio as aioredis
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ridehail.api.middleware import limiter
from ridehail.api.routes import admin, drivers, pending_rides, trips
from ridehail.config import Settings, settings as default_settings
from ridehail.domain.errors import (
    Conflict,
    DomainError,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    ValidationError,
)
from ridehail.infrastructure.database import Database
from ridehail.infrastructure.gateway import PersistenceGateway
from ridehail.infrastructure.redis_client import create_redis
from ridehail.services.container import build_services
from ridehail.workers.maintenance import MaintenanceWorker

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_STATUS_FOR = {
    ValidationError: 400,
    NotFound: 404,
    Conflict: 409,
    InvalidTransition: 409,
    PersistenceFailure: 503,
}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status = next(
        (code for kind, code in _STATUS_FOR.items() if isinstance(exc, kind)), 500
    )
    if status == 503:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    redis: Optional[aioredis.Redis] = None,
) -> FastAPI:
    settings = settings or default_settings
    database = database or Database.from_settings(settings)
    redis = redis if redis is not None else create_redis(settings.redis_url)

    gateway = PersistenceGateway(
        database,
        read_attempts=settings.read_retry_attempts,
        read_backoff_seconds=settings.read_retry_backoff_seconds,
    )
    services = build_services(settings, gateway, redis)
    worker = None
    if settings.maintenance_worker_enabled:
        worker = MaintenanceWorker(
            services.matching,
            services.earnings,
            redis,
            interval_seconds=settings.sweep_interval_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the maintenance worker on startup; release resources on shutdown."""
        if worker is not None:
            await worker.start()
        yield
        if worker is not None:
            await worker.stop()
        await gateway.close()
        await redis.aclose()

    app = FastAPI(
        title="Ride Hailing Matching API",
        description=(
            "Matches passengers' trip requests with nearby drivers and "
            "drives each trip through its lifecycle.  Concurrent accepts "
            "resolve to exactly one winner; earnings and realtime events "
            "follow every completed trip."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.worker = worker

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(pending_rides.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
