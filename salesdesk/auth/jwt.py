"""
JWT token handling.

Security measures:
- Access tokens (24h default) and refresh tokens (7 days) bound to a session id
- Secret key, algorithm, issuer and audience from settings
- Token type validation (a refresh token is never an access token)
- Unique ``jti`` per token, so two tokens minted in the same second differ
- Expiry checked against the injected clock instead of the wall clock
"""

import uuid
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError
from pydantic import BaseModel

from salesdesk.core.clock import SystemClock
from salesdesk.core.config import Settings
from salesdesk.core.errors import AuthError, ErrorCode
from salesdesk.core.logging import get_logger
from salesdesk.models.user import User

logger = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Decoded JWT claims."""
    sub: str                          # User ID (subject)
    type: str                         # "access" or "refresh"
    iat: int                          # Issued at (epoch seconds)
    exp: int                          # Expiration (epoch seconds)
    iss: str
    aud: str
    jti: Optional[str] = None
    sid: Optional[str] = None         # Session token

    # Identity snapshot, access tokens only
    code: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None

    @property
    def user_id(self) -> int:
        return int(self.sub)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    session_id: str
    expires_in: int                   # Access token lifetime in seconds
    token_type: str = "Bearer"


class TokenIssuer:
    """Mints and verifies signed tokens."""

    def __init__(self, settings: Settings, clock: Optional[SystemClock] = None):
        self.settings = settings
        self.clock = clock or SystemClock()
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)

    def new_session_id(self) -> str:
        """Opaque, globally unique session token."""
        return f"{uuid.uuid4().hex}_{int(self.clock.now().timestamp() * 1000)}"

    def _encode(self, claims: dict, ttl: timedelta) -> str:
        issued_at = self.clock.timestamp()
        payload = {
            **claims,
            "iat": issued_at,
            "exp": issued_at + int(ttl.total_seconds()),
            "iss": self.settings.token_issuer,
            "aud": self.settings.token_audience,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)

    def issue_pair(self, user: User, session_id: Optional[str] = None) -> TokenPair:
        """
        Create an access/refresh pair for ``user``.

        Both tokens carry the same ``sid``. A fresh session id is generated
        when none is given (a new login); renewals pass the existing one.
        """
        session_id = session_id or self.new_session_id()

        access_token = self._encode(
            {
                "sub": str(user.id),
                "code": user.code,
                "name": user.name,
                "email": user.email,
                "role": user.role.value,
                "status": user.status.value,
                "sid": session_id,
                "type": ACCESS,
            },
            self.access_ttl,
        )
        refresh_token = self._encode(
            {"sub": str(user.id), "sid": session_id, "type": REFRESH},
            self.refresh_ttl,
        )

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            session_id=session_id,
            expires_in=int(self.access_ttl.total_seconds()),
        )

    @staticmethod
    def has_valid_structure(token: Optional[str]) -> bool:
        """Cheap pre-check: three non-empty dot-separated segments."""
        if not token or not isinstance(token, str):
            return False
        parts = token.split(".")
        return len(parts) == 3 and all(parts)

    def verify(self, token: str, expected_type: Optional[str] = None) -> TokenClaims:
        """
        Verify signature, issuer and audience, then expiry and type.

        Raises:
            AuthError TOKEN_INVALID: bad signature, structure, issuer or audience
            AuthError TOKEN_EXPIRED: ``exp`` is not after the clock's now
            AuthError WRONG_TOKEN_TYPE: ``type`` differs from ``expected_type``
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
                audience=self.settings.token_audience,
                issuer=self.settings.token_issuer,
                options={"verify_exp": False},
            )
            claims = TokenClaims(**payload)
        except (JWTError, ValueError, TypeError) as e:
            logger.debug("token_rejected", error=str(e))
            raise AuthError(ErrorCode.TOKEN_INVALID, "Invalid token")

        if claims.exp <= self.clock.timestamp():
            raise AuthError(ErrorCode.TOKEN_EXPIRED, "Token has expired")

        if expected_type and claims.type != expected_type:
            raise AuthError(
                ErrorCode.WRONG_TOKEN_TYPE,
                f"Invalid token type. Expected {expected_type}, got {claims.type}",
            )

        return claims

    def renew(self, refresh_token: str, user: User) -> TokenPair:
        """Re-issue both tokens for the session named in ``refresh_token``."""
        claims = self.verify(refresh_token, expected_type=REFRESH)
        if claims.sub != str(user.id):
            raise AuthError(ErrorCode.INVALID_REFRESH_TOKEN, "Refresh token does not belong to this user")
        return self.issue_pair(user, session_id=claims.sid)
