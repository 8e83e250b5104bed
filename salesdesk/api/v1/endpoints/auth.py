"""
Authentication endpoints.

Provides:
- Login (code or email + password → access/refresh tokens and a session)
- Token refresh
- Logout (current session or all sessions)
- Session listing and validation
- Password change
- Current user status
- Expired session cleanup (admin)
"""

from fastapi import APIRouter, Depends, Request

from salesdesk.auth.dependencies import (
    Principal,
    RefreshGrant,
    enforce_login_rate_limit,
    get_client_ip,
    get_context,
    get_current_principal,
    get_user_agent,
    require_admin,
    verify_refresh_token,
)
from salesdesk.core.context import AppContext
from salesdesk.core.errors import AuthError, ErrorCode
from salesdesk.core.responses import success_response
from salesdesk.schemas.auth import LoginRequest, PasswordChangeRequest

router = APIRouter()


@router.post("/login")
async def login(
    request: Request,
    login_data: LoginRequest,
    limiter_key: str = Depends(enforce_login_rate_limit),
    ctx: AppContext = Depends(get_context),
):
    """
    Authenticate with a user code (or email) and password.

    Opens a new session and returns the token pair bound to it.
    """
    result = await ctx.auth.login(
        login_data.code,
        login_data.password,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    ctx.login_limiter.reset(limiter_key)
    return success_response(result, "Login successful")


@router.post("/refresh")
@router.post("/refresh-token", include_in_schema=False)
async def refresh_token(
    grant: RefreshGrant = Depends(verify_refresh_token),
    ctx: AppContext = Depends(get_context),
):
    """
    Exchange a refresh token for a new token pair.

    The session id is kept; the stored refresh token is rotated.
    """
    result = await ctx.auth.refresh_tokens(grant.refresh_token, grant.user, grant.session_id)
    return success_response(result, "Tokens refreshed")


@router.post("/logout")
async def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    """Close the session the access token belongs to."""
    await ctx.auth.logout(principal.session_id, principal.id, ip_address=get_client_ip(request))
    return success_response(message="Logged out")


@router.post("/logout-all")
async def logout_all(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    """Close every active session of the current user, this one included."""
    result = await ctx.auth.logout_all(principal.id, ip_address=get_client_ip(request))
    return success_response(result, "All sessions closed")


@router.get("/sessions")
async def list_sessions(
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    sessions = await ctx.auth.list_sessions(principal.id, current_session_id=principal.session_id)
    return success_response(sessions, "Active sessions")


@router.get("/validate")
async def validate_session(
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    if not principal.session_id:
        raise AuthError(ErrorCode.MISSING_SESSION_TOKEN, "Token is not bound to a session")

    result = await ctx.auth.validate_session(principal.session_id)
    return success_response(result, "Session is valid")


@router.post("/change-password")
async def change_password(
    request: Request,
    password_data: PasswordChangeRequest,
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    """
    Change the current user's password.

    Every session of the user is revoked; the client must log in again.
    """
    revoked = await ctx.auth.change_password(
        principal.id,
        password_data.current_password,
        password_data.new_password,
        ip_address=get_client_ip(request),
    )
    return success_response(
        {"revokedSessions": revoked},
        "Password changed. Please log in again.",
    )


@router.get("/me")
async def get_current_user_status(
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    result = await ctx.auth.check_user_status(principal.id)
    return success_response(result, "Current user")


@router.post("/cleanup")
async def cleanup_sessions(
    request: Request,
    principal: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    """Mark every active session past its expiry as expired."""
    result = await ctx.auth.cleanup_expired_sessions(principal.id, ip_address=get_client_ip(request))
    return success_response(result, "Expired sessions cleaned up")


@router.post("/register")
async def register():
    """Self-registration is disabled; accounts are created by an admin."""
    raise AuthError(
        ErrorCode.REGISTRATION_DISABLED,
        "Self-registration is disabled. Contact an administrator.",
    )


@router.get("/health")
async def auth_health():
    return success_response({"service": "auth", "status": "healthy"}, "Auth service is running")
