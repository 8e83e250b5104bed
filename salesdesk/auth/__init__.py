"""
Authentication and Authorization module.

Provides:
- JWT token issuance and verification bound to login sessions
- Password hashing (Argon2id) and password policy
- Credential verification
- Role-based access control
- Activity logging for auth events
"""

from salesdesk.auth.jwt import (
    TokenIssuer,
    TokenClaims,
    TokenPair,
)
from salesdesk.auth.password import (
    PasswordService,
    validate_password_strength,
    generate_temp_password,
)
from salesdesk.auth.credentials import CredentialVerifier, CredentialCheck
from salesdesk.auth.audit import ActivityRecorder, redact

__all__ = [
    # JWT
    "TokenIssuer",
    "TokenClaims",
    "TokenPair",
    # Password
    "PasswordService",
    "validate_password_strength",
    "generate_temp_password",
    # Credentials
    "CredentialVerifier",
    "CredentialCheck",
    # Activity
    "ActivityRecorder",
    "redact",
]
