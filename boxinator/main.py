"""
Boxinator API
Shipment booking service: pricing, status history, guest accounts and claims.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from boxinator.api import accounts, auth, countries, shipments
from boxinator.core import RequestLoggingMiddleware, ServiceHealth, get_logger, setup_logging
from boxinator.core_settings import Settings, get_settings
from boxinator.errors import BoxinatorError, ValidationFailed
from boxinator.infrastructure.mailer import Mailer
from boxinator.infrastructure.store import ShipmentStore, build_store
from boxinator.rate_limit import AuthRateLimiter

SERVICE_NAME = "boxinator-api"
SERVICE_DESCRIPTION = "Shipment booking and tracking service"

# Responses under these prefixes can carry a bearer token
TOKEN_ISSUING_PATHS = ("/auth/", "/shipments/claim/")

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.path.startswith(TOKEN_ISSUING_PATHS):
            response.headers["Cache-Control"] = "no-store"
        return response


def _describe(errors) -> str:
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or ValidationFailed.default_message


def create_app(settings: Optional[Settings] = None, store: Optional[ShipmentStore] = None) -> FastAPI:
    """Build the application.

    ``store`` overrides STORAGE_BACKEND; the caller then keeps ownership and
    the store is not closed at shutdown.
    """
    settings = settings or get_settings()
    setup_logging(service_name=SERVICE_NAME, level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_store = store is None
        try:
            app.state.store = build_store(settings) if owns_store else store
        except Exception:
            logger.error(f"Could not open the {settings.STORAGE_BACKEND} store", exc_info=True)
            raise
        app.state.mailer = Mailer(settings)
        app.state.rate_limiter = AuthRateLimiter(
            settings.AUTH_RATE_LIMIT_MAX,
            settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
        )
        if settings.SEED_ON_STARTUP:
            from boxinator.seed import seed

            seed(app.state.store, settings)

        logger.info(
            f"{SERVICE_NAME} {settings.SERVICE_VERSION} ready",
            extra={'extra_fields': {'backend': app.state.store.backend, 'environment': settings.ENVIRONMENT}},
        )
        yield

        if owns_store:
            app.state.store.close()
        logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title=SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    wildcard = settings.CORS_ORIGINS == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=not wildcard,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(BoxinatorError)
    async def boxinator_error_handler(request: Request, exc: BoxinatorError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = ValidationFailed(_describe(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    health = ServiceHealth(
        SERVICE_NAME,
        settings.SERVICE_VERSION,
        store_provider=lambda: getattr(app.state, "store", None),
        insecure_config=settings.JWT_SECRET == "change-me",
    )
    app.include_router(health.create_health_router())

    for module in (auth, accounts, countries, shipments):
        app.include_router(module.router)

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "docs": "/api/docs",
        }

    @app.get("/info")
    async def info():
        """What is running and where to find it."""
        return {
            "service": SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "description": SERVICE_DESCRIPTION,
            "environment": settings.ENVIRONMENT,
            "storage_backend": settings.STORAGE_BACKEND,
            "endpoints": {
                "auth": "/auth",
                "accounts": "/account",
                "countries": "/countries",
                "shipments": "/shipments",
                "health": "/health",
                "ready": "/health/ready",
                "live": "/health/live",
                "metrics": "/metrics",
                "docs": "/api/docs",
            },
        }

    return app


app = create_app()
