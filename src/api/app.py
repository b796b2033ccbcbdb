"""
FastAPI application factory.

* Registers routes for rides, riders, notifications and admin.
* Starts / stops the background push worker via lifespan events.
* Maps lifecycle exceptions onto HTTP errors.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, notifications, riders, rides
from src.config import settings
from src.domain.entities import ActorNotPermitted, RideValidationError
from src.infrastructure.database import async_session_factory
from src.infrastructure.events import InMemoryEventBus, RedisEventBus
from src.infrastructure.push import ExpoPushClient
from src.infrastructure.store import RideNotFound
from src.services.lifecycle import (
    RideLifecycleController,
    RiderNotApproved,
    StoreUnavailable,
    build_controller,
)
from src.workers.push_sender import PushWorker

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


def _default_controller() -> RideLifecycleController:
    if settings.event_backend == "memory":
        bus = InMemoryEventBus()
    else:
        bus = RedisEventBus.from_url(settings.redis_url)

    push_worker = None
    if settings.push_enabled:
        push_worker = PushWorker(
            ExpoPushClient(settings.expo_push_url, settings.push_timeout_seconds),
            max_queue=settings.push_queue_size,
        )
    return build_controller(async_session_factory, bus, push_worker=push_worker)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the push worker on startup; stop it and the event bus on shutdown."""
    controller: RideLifecycleController = app.state.controller
    worker = controller.notifier.push_worker
    if worker is not None:
        await worker.start()
    yield
    if worker is not None:
        await worker.stop()
        await worker.client.aclose()
    await controller.notifier.bus.close()


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RideNotFound)
    async def ride_not_found(request: Request, exc: RideNotFound):
        return _error(404, "Ride not found")

    @app.exception_handler(RideValidationError)
    async def invalid_input(request: Request, exc: RideValidationError):
        return _error(422, str(exc))

    @app.exception_handler(ActorNotPermitted)
    async def not_permitted(request: Request, exc: ActorNotPermitted):
        return _error(403, str(exc) or "Not allowed")

    @app.exception_handler(RiderNotApproved)
    async def not_approved(request: Request, exc: RiderNotApproved):
        return _error(403, "Your rider account is not approved yet")

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable(request: Request, exc: StoreUnavailable):
        return _error(503, "Service temporarily unavailable. Please try again.")

    @app.exception_handler(Exception)
    async def unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Something went wrong. Please try again.")


def create_app(controller: Optional[RideLifecycleController] = None) -> FastAPI:
    app = FastAPI(
        title="Ride Lifecycle API",
        description=(
            "Moves on-demand rides between passengers and riders: request, "
            "race-safe claim, pickup, completion and rating, with live "
            "ride documents and an inbox / push notification channel."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Set here rather than in lifespan so in-process test clients see them
    app.state.controller = controller or _default_controller()
    app.state.session_factory = app.state.controller.session_factory

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    _register_exception_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(riders.router, prefix="/api/v1")
    app.include_router(notifications.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
