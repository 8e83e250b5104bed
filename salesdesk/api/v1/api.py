"""
API Router configuration.

Aggregates all v1 API endpoints with proper tagging and prefixes.
"""

from datetime import datetime, timezone

from typing import Optional

from fastapi import APIRouter, Depends, Request

from salesdesk.api.v1.endpoints import auth, users
from salesdesk.auth.dependencies import Principal, get_optional_principal
from salesdesk.core.responses import success_response

api_router = APIRouter()

# Authentication (no auth required for login/refresh)
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["authentication"]
)

# User management (admin, supervisors read-only)
api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)


@api_router.get("/status", tags=["status"])
async def api_status(
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
):
    """Service information; names the caller when a valid token is sent."""
    settings = request.app.state.settings
    return success_response(
        {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user": principal.code if principal else None,
        },
        "API is running",
    )
