"""
FastAPI dependencies for authentication and authorization.

Provides:
- get_current_principal: Resolve a bearer access token to a Principal
- get_optional_principal: Same, but None instead of an error
- verify_refresh_token: Resolve the refresh token in the request body
- require_role / require_admin / require_supervisor: Role checks
- require_self_or_admin: Ownership check on a path parameter
- enforce_login_rate_limit: Throttle login attempts per ip and code
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from salesdesk.auth.jwt import ACCESS, REFRESH, TokenClaims
from salesdesk.core.context import AppContext
from salesdesk.core.errors import AuthError, ErrorCode
from salesdesk.core.logging import get_logger
from salesdesk.models.user import User, UserRole, UserStatus

logger = get_logger(__name__)

# HTTP Bearer token extractor
security = HTTPBearer(auto_error=False)

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class Principal(BaseModel):
    """The authenticated identity attached to a request."""

    id: int
    code: str
    name: str
    email: str
    role: UserRole
    status: UserStatus
    session_id: Optional[str] = None


@dataclass
class RefreshGrant:
    """What the refresh dependency hands to the refresh endpoint."""

    user: User
    refresh_token: str
    session_id: Optional[str]


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.
    Handles X-Forwarded-For header for proxied requests.
    """
    # Check for proxy headers
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    # Fall back to direct connection
    if request.client:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> str:
    """Extract user agent from request headers."""
    return request.headers.get("User-Agent", "unknown")[:500]  # Limit length


async def _read_json_body(request: Request) -> dict:
    """Parsed JSON body, or {} when the body is absent or not an object."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def authenticate(ctx: AppContext, token: Optional[str]) -> tuple[Principal, TokenClaims]:
    """
    Resolve an access token to a principal.

    Steps, in order: token present, three segments, signature and expiry,
    access type, user exists, user active, session (if the token names one)
    active and unexpired. The session's last activity is updated on success.
    """
    if not token:
        raise AuthError(ErrorCode.MISSING_TOKEN, "Access token required", headers=BEARER_CHALLENGE)

    if not ctx.issuer.has_valid_structure(token):
        raise AuthError(ErrorCode.INVALID_TOKEN_FORMAT, "Malformed access token", headers=BEARER_CHALLENGE)

    try:
        claims = ctx.issuer.verify(token)
    except AuthError as e:
        if e.code == ErrorCode.TOKEN_EXPIRED:
            raise AuthError(ErrorCode.TOKEN_EXPIRED, "Access token has expired", headers=BEARER_CHALLENGE)
        raise AuthError(ErrorCode.TOKEN_VERIFICATION_FAILED, "Invalid access token", headers=BEARER_CHALLENGE)

    if claims.type != ACCESS:
        raise AuthError(
            ErrorCode.WRONG_TOKEN_TYPE,
            "An access token is required",
            status_code=401,
            headers=BEARER_CHALLENGE,
        )

    try:
        user_id = claims.user_id
    except ValueError:
        raise AuthError(ErrorCode.TOKEN_VERIFICATION_FAILED, "Invalid access token", headers=BEARER_CHALLENGE)

    user = await ctx.users.get_by_id(user_id)
    if user is None:
        raise AuthError(ErrorCode.USER_NOT_FOUND, "User not found", headers=BEARER_CHALLENGE)

    if not user.is_active():
        raise AuthError(ErrorCode.USER_INACTIVE, "User account is not active", headers=BEARER_CHALLENGE)

    if claims.sid:
        session = await ctx.sessions.find_active_by_token(claims.sid, user.id)
        if session is None:
            raise AuthError(ErrorCode.INVALID_SESSION, "Session is no longer valid", headers=BEARER_CHALLENGE)
        if not session.is_valid(ctx.clock.now()):
            await ctx.sessions.mark_expired(session)
            raise AuthError(ErrorCode.INVALID_SESSION, "Session has expired", headers=BEARER_CHALLENGE)
        await ctx.sessions.touch(session)

    principal = Principal(
        id=user.id,
        code=user.code,
        name=user.name,
        email=user.email,
        role=user.role,
        status=user.status,
        session_id=claims.sid,
    )
    return principal, claims


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ctx: AppContext = Depends(get_context),
) -> Principal:
    """
    Authenticate the request from its ``Authorization: Bearer`` header.

    Raises:
        AuthError 401: missing, malformed, expired or invalid token; unknown
            or inactive user; revoked or expired session
        AuthError 500: anything unexpected during the checks
    """
    token = credentials.credentials if credentials else None

    try:
        principal, claims = await authenticate(ctx, token)
    except AuthError as e:
        logger.warning("authentication_failed", path=request.url.path, code=e.code.value)
        raise
    except Exception:
        logger.exception("authentication_error", path=request.url.path)
        raise AuthError(ErrorCode.INTERNAL_SERVER_ERROR, "Authentication error")

    request.state.principal = principal
    request.state.token = token
    request.state.token_claims = claims
    return principal


async def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ctx: AppContext = Depends(get_context),
) -> Optional[Principal]:
    """
    Try to authenticate, but return None instead of failing.
    Useful for endpoints that work differently for authenticated vs anonymous users.
    """
    if not credentials:
        return None

    try:
        principal, claims = await authenticate(ctx, credentials.credentials)
    except AuthError as e:
        logger.debug("optional_authentication_ignored", code=e.code.value)
        return None
    except Exception:
        logger.exception("optional_authentication_error", path=request.url.path)
        return None

    request.state.principal = principal
    request.state.token = credentials.credentials
    request.state.token_claims = claims
    return principal


async def verify_refresh_token(
    request: Request,
    ctx: AppContext = Depends(get_context),
) -> RefreshGrant:
    """Validate the ``refreshToken`` from the JSON body. No session row is required here."""
    body = await _read_json_body(request)
    token = body.get("refreshToken") or body.get("refresh_token")

    if not token or not isinstance(token, str):
        raise AuthError(ErrorCode.MISSING_REFRESH_TOKEN, "Refresh token required")

    try:
        claims = ctx.issuer.verify(token)
    except AuthError:
        raise AuthError(ErrorCode.INVALID_REFRESH_TOKEN, "Invalid or expired refresh token")

    if claims.type != REFRESH:
        raise AuthError(ErrorCode.WRONG_TOKEN_TYPE, "A refresh token is required")

    try:
        user = await ctx.users.get_by_id(claims.user_id)
    except ValueError:
        user = None

    if user is None or not user.is_active():
        raise AuthError(ErrorCode.INVALID_USER, "User not found or inactive")

    request.state.user = user
    request.state.refresh_token = token
    request.state.session_id = claims.sid
    return RefreshGrant(user=user, refresh_token=token, session_id=claims.sid)


def check_role(principal: Optional[Principal], allowed_roles: tuple[UserRole, ...]) -> Principal:
    """Raise unless ``principal`` holds one of ``allowed_roles``."""
    if principal is None:
        raise AuthError(ErrorCode.AUTHENTICATION_REQUIRED, "Authentication required")

    if principal.role not in allowed_roles:
        logger.warning(
            "permission_denied",
            user=principal.code,
            role=principal.role.value,
            required=[r.value for r in allowed_roles],
        )
        raise AuthError(
            ErrorCode.INSUFFICIENT_PERMISSIONS,
            "You do not have permission to perform this action",
            details={
                "requiredRoles": [r.value for r in allowed_roles],
                "userRole": principal.role.value,
            },
        )
    return principal


def require_role(*allowed_roles: UserRole):
    """
    Dependency to require specific role(s).

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(
            principal: Principal = Depends(require_role(UserRole.ADMIN))
        ):
            ...
    """
    async def role_checker(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        return check_role(principal, allowed_roles)

    return role_checker


require_admin = require_role(UserRole.ADMIN)
require_supervisor = require_role(UserRole.SUPERVISOR, UserRole.ADMIN)


def require_self_or_admin(param: str = "user_id"):
    """Allow the owner of the resource named by path parameter ``param``, or any admin."""
    async def ownership_checker(
        request: Request,
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role == UserRole.ADMIN:
            return principal

        try:
            target_id = int(request.path_params.get(param))
        except (TypeError, ValueError):
            target_id = None

        if target_id != principal.id:
            raise AuthError(ErrorCode.ACCESS_DENIED, "You can only access your own resources")
        return principal

    return ownership_checker


async def enforce_login_rate_limit(
    request: Request,
    ctx: AppContext = Depends(get_context),
) -> str:
    """
    Count a login attempt against ``ip:code``.

    Returns the limiter key so a successful login can clear it.
    """
    body = await _read_json_body(request)
    code = str(body.get("code") or "unknown").strip().lower()
    key = f"{get_client_ip(request)}:{code}"

    allowed, retry_after = ctx.login_limiter.hit(key)
    if not allowed:
        raise AuthError(
            ErrorCode.LOGIN_RATE_LIMIT_EXCEEDED,
            "Too many login attempts. Try again later.",
            details={"retryAfter": retry_after, "limit": ctx.login_limiter.limit},
            headers={"Retry-After": str(retry_after)},
        )
    return key
