"""
SalesDesk - Sales advisor quoting backend

Main FastAPI application with security hardening.
"""

import asyncio
import secrets
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from salesdesk.api.error_handling import register_exception_handlers
from salesdesk.api.v1.api import api_router
from salesdesk.auth.password import generate_temp_password
from salesdesk.core.clock import SystemClock
from salesdesk.core.config import Settings, get_settings
from salesdesk.core.context import AppContext, build_context
from salesdesk.core.logging import configure_logging, get_logger
from salesdesk.core.responses import success_response
from salesdesk.models.user import UserRole
from salesdesk.schemas.common import HealthResponse

logger = get_logger(__name__)


# =============================================================================
# Application Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    settings: Settings = app.state.settings
    logger.info(
        "app_starting",
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    ctx = build_context(settings, app.state.clock)
    app.state.context = ctx

    await ctx.database.create_all()
    logger.info("database_initialized")

    if settings.create_default_admin:
        await create_default_admin_if_needed(ctx)

    sweeper = None
    if settings.session_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            run_session_sweeper(ctx, settings.session_sweep_interval_seconds)
        )

    try:
        yield
    finally:
        logger.info("app_stopping", app=settings.app_name)
        if sweeper is not None:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
        await ctx.close()


async def create_default_admin_if_needed(ctx: AppContext) -> None:
    """Create a default admin user if no users exist."""
    if await ctx.users.count() > 0:
        return

    # Generate a secure temporary password
    temp_password = generate_temp_password()

    await ctx.users.create(
        code="ADMIN001",
        name="SalesDesk Administrator",
        email="admin@salesdesk.local",
        password_hash=await ctx.passwords.hash(temp_password),
        role=UserRole.ADMIN,
    )
    logger.warning("default_admin_created", code="ADMIN001")

    # Shown once on the console, never written to the log
    print("=" * 60)
    print("DEFAULT ADMIN ACCOUNT CREATED")
    print("   Code:     ADMIN001")
    print(f"   Password: {temp_password}")
    print("   CHANGE THIS PASSWORD IMMEDIATELY!")
    print("=" * 60)


async def run_session_sweeper(ctx: AppContext, interval_seconds: int) -> None:
    """Periodically expire sessions whose TTL has passed."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await ctx.sessions.sweep_expired()
        except Exception:
            logger.exception("session_sweep_failed")


# =============================================================================
# Security Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Referrer policy
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Permissions policy (disable unused features)
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
            "magnetometer=(), microphone=(), payment=(), usb=()"
        )

        # Docs pages load their own assets; everything else is JSON
        if not request.url.path.startswith(("/docs", "/redoc")):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        # HSTS (only enable in production with HTTPS)
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for tracing and log every request."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or secrets.token_urlsafe(8)
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        try:
            response = await call_next(request)
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response


# =============================================================================
# Application factory
# =============================================================================

def create_app(settings: Optional[Settings] = None, clock: Optional[SystemClock] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Collaborators are created in the lifespan, so constructing the app never
    touches the database.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Sales advisor quoting API",
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url="/redoc" if settings.enable_docs else None,
        openapi_url="/openapi.json" if settings.enable_docs else None,
    )
    app.state.settings = settings
    app.state.clock = clock or SystemClock()

    # =========================================================================
    # Add Middleware (order matters - last added = outermost)
    # =========================================================================

    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    app.add_middleware(RequestIDMiddleware)

    # Trusted hosts (prevent host header attacks)
    if "*" not in settings.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    # CORS - outermost so preflight requests are answered first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    # =========================================================================
    # Routes
    # =========================================================================

    @app.get("/", tags=["root"])
    async def home():
        """Root endpoint."""
        return success_response(
            {
                "name": settings.app_name,
                "version": settings.app_version,
                "docs": "/docs" if settings.enable_docs else None,
                "api": settings.api_prefix,
            },
            "Service is running",
        )

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and monitoring."""
        ctx: AppContext = request.app.state.context

        db_status = "healthy"
        try:
            await ctx.database.ping()
        except Exception as e:
            logger.error("health_db_ping_failed", error=str(e))
            db_status = "unhealthy"

        return success_response(
            HealthResponse(
                status="healthy" if db_status == "healthy" else "degraded",
                version=settings.app_version,
                database=db_status,
                timestamp=datetime.now(timezone.utc),
            ),
            "Health check",
            status_code=200 if db_status == "healthy" else 503,
        )

    # Include API routers
    app.include_router(api_router, prefix=settings.api_prefix)

    return app


app = create_app()


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "salesdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
