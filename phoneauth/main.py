"""phoneauth - FastAPI Application Factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError

from phoneauth.api import api_router, health_router, internal_router
from phoneauth.core import async_session_maker, settings, setup_logging
from phoneauth.core.clock import utcnow
from phoneauth.core.logging import get_logger
from phoneauth.middleware import BearerAuthMiddleware

# Import all models to ensure they're registered with Base for Alembic
from phoneauth.models import OtpRecord, Principal, SessionToken, TokenBlacklist  # noqa: F401
from phoneauth.services.delivery import get_delivery_dispatcher
from phoneauth.services.otp import OtpConflictError
from phoneauth.services.store_sweeper import StoreSweeper

logger = get_logger("main")

# Seconds to let in-flight SMS sends finish on shutdown
DELIVERY_DRAIN_TIMEOUT = 10.0

SERVICE_UNAVAILABLE_DETAIL = "Service temporarily unavailable"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    sweeper = StoreSweeper.get_instance()
    sweeper.set_session_maker(app.state.session_maker)
    await sweeper.start()

    yield

    logger.info("Shutting down...")
    await sweeper.stop()
    await app.state.dispatcher.wait_idle(timeout=DELIVERY_DRAIN_TIMEOUT)


def install_exception_handlers(app: FastAPI) -> None:
    """Turn infrastructure failures into 503 without leaking internals."""

    async def service_unavailable(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Infrastructure error on {request.method} {request.url.path}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": SERVICE_UNAVAILABLE_DETAIL},
        )

    for exc_class in (OperationalError, InterfaceError, DBAPIError, OtpConflictError):
        app.add_exception_handler(exc_class, service_unavailable)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Phone number OTP login and session token service",
        version=settings.app_version,
        lifespan=lifespan,
        # The schema lists every endpoint; only publish it for local development
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    # Collaborators the middleware and dependencies look up per request
    app.state.session_maker = async_session_maker
    app.state.clock = utcnow
    app.state.dispatcher = get_delivery_dispatcher()

    # Validates bearer tokens on everything but /health, /otp and /internal
    app.add_middleware(BearerAuthMiddleware)

    # CORS middleware - MUST be outermost (added last in Starlette LIFO order)
    # so that CORS headers are present on ALL responses, including 401s.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
        ],
    )

    install_exception_handlers(app)

    # Prometheus metrics (before routers so /metrics endpoint is registered first)
    if settings.enable_metrics:
        from prometheus_fastapi_instrumentator import Instrumentator

        Instrumentator(
            excluded_handlers=["/health", "/health/detail", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    app.include_router(health_router)  # Health at root level
    app.include_router(internal_router)  # Internal service-to-service (/internal)
    app.include_router(api_router)  # /otp and /session

    return app


# Application instance
app = create_app()
