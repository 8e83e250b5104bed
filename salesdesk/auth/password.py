"""
Password hashing with Argon2id.

Argon2id is the recommended password hashing algorithm because:
- Memory-hard (resists GPU/ASIC attacks)
- Side-channel resistant (id variant)
- Winner of the Password Hashing Competition

Cost parameters come from settings (64MB / 3 iterations by default). Hashing
is CPU bound, so the async helpers push it onto Starlette's threadpool.
"""

import re
import secrets
import string
from dataclasses import dataclass, field

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError
from starlette.concurrency import run_in_threadpool

from salesdesk.core.config import Settings

SPECIAL_CHARS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"
WEAK_PATTERNS = [
    re.compile(r"123456"),
    re.compile(r"password", re.IGNORECASE),
    re.compile(r"qwerty", re.IGNORECASE),
    re.compile(r"admin", re.IGNORECASE),
    re.compile(r"letmein", re.IGNORECASE),
]
MIN_LENGTH = 6
MIN_SCORE = 3


class PasswordService:
    """Argon2id hasher configured from settings."""

    def __init__(self, settings: Settings):
        self._hasher = PasswordHasher(
            time_cost=settings.password_time_cost,
            memory_cost=settings.password_memory_cost,
            parallelism=settings.password_parallelism,
            hash_len=32,
            salt_len=16,
        )

    def hash_sync(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify_sync(self, password: str, password_hash: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            # Hash is malformed - treat as verification failure
            return False

    async def hash(self, password: str) -> str:
        """Hash a password without blocking the event loop."""
        return await run_in_threadpool(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash without blocking the event loop."""
        return await run_in_threadpool(self.verify_sync, password, password_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        """
        Check if a stored hash was made with outdated parameters.

        After a successful login, check this and rehash if needed.
        """
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


@dataclass
class PasswordStrength:
    is_valid: bool
    score: int
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def validate_password_strength(password: str) -> PasswordStrength:
    """
    Score a password against the account password policy.

    Rules:
    - At least 6 characters (hard error)
    - One point each for: length >= 6, length >= 8, an uppercase letter,
      a lowercase letter, a digit, a special character
    - Common patterns ("123456", "password", "qwerty", "admin", "letmein")
      are a hard error and cost two points

    A password is acceptable when there are no errors and the score is at
    least 3. Missing character classes only produce suggestions.
    """
    result = PasswordStrength(is_valid=False, score=0)

    if not password:
        result.errors.append("Password is required")
        return result

    if len(password) < MIN_LENGTH:
        result.errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    else:
        result.score += 1

    if len(password) >= 8:
        result.score += 1

    if any(c.isupper() for c in password):
        result.score += 1
    else:
        result.suggestions.append("Include at least one uppercase letter")

    if any(c.islower() for c in password):
        result.score += 1
    else:
        result.suggestions.append("Include at least one lowercase letter")

    if any(c.isdigit() for c in password):
        result.score += 1
    else:
        result.suggestions.append("Include at least one digit")

    if any(c in SPECIAL_CHARS for c in password):
        result.score += 1
    else:
        result.suggestions.append("Include at least one special character")

    if any(pattern.search(password) for pattern in WEAK_PATTERNS):
        result.errors.append('Avoid common patterns such as "123456" or "password"')
        result.score -= 2

    result.is_valid = not result.errors and result.score >= MIN_SCORE
    return result


def generate_temp_password(length: int = 12) -> str:
    """
    Generate a secure temporary password.

    Used when an admin creates an account without choosing a password.
    The result always contains every character class and passes
    ``validate_password_strength``.
    """
    length = max(length, 8)
    symbols = "!@#$%^&*"

    while True:
        # Ensure at least one of each required character type
        password = [
            secrets.choice(string.ascii_uppercase),
            secrets.choice(string.ascii_lowercase),
            secrets.choice(string.digits),
            secrets.choice(symbols),
        ]

        alphabet = string.ascii_letters + string.digits + symbols
        password.extend(secrets.choice(alphabet) for _ in range(length - 4))

        # Shuffle to avoid predictable positions
        secrets.SystemRandom().shuffle(password)
        candidate = "".join(password)

        # A random draw can still spell out a weak pattern
        if not any(pattern.search(candidate) for pattern in WEAK_PATTERNS):
            return candidate
