"""
Application settings.

Values come from environment variables (a local .env file is loaded first).
Tests build ``Settings`` directly instead of going through the environment.
"""

import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from salesdesk.core.logging import get_logger

logger = get_logger(__name__)

# Base directory of the project (parent of 'salesdesk')
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Database Directory
DB_DIR = BASE_DIR / "db"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings(BaseModel):
    """Runtime configuration for the API."""

    # Application
    app_name: str = "SalesDesk API"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Database
    database_url: str = f"sqlite+aiosqlite:///{DB_DIR / 'salesdesk.db'}"
    sql_echo: bool = False

    # Tokens
    jwt_secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 24 * 60
    refresh_token_expire_days: int = 7
    token_issuer: str = "salesdesk-api"
    token_audience: str = "salesdesk-app"

    # Sessions
    session_ttl_hours: int = 24
    session_sweep_interval_seconds: int = 3600

    # Argon2id cost parameters
    password_time_cost: int = 3
    password_memory_cost: int = 65536
    password_parallelism: int = 4

    # Login throttling
    login_rate_limit_attempts: int = 5
    login_rate_limit_window_seconds: int = 15 * 60

    # HTTP
    api_prefix: str = "/api/v1"
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    trusted_hosts: List[str] = Field(default_factory=lambda: ["*"])
    enable_docs: bool = True
    enable_hsts: bool = False

    # Bootstrap
    create_default_admin: bool = True

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in {"development", "dev", "local"}

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        load_dotenv()

        secret = os.getenv("JWT_SECRET_KEY")
        if not secret:
            # Random key per process: tokens will not survive a restart
            secret = secrets.token_urlsafe(32)
            logger.warning("jwt_secret_generated", reason="JWT_SECRET_KEY is not set")

        return cls(
            app_name=os.getenv("APP_NAME", "SalesDesk API"),
            environment=os.getenv("ENVIRONMENT", "development"),
            debug=_env_bool("DEBUG"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON"),
            database_url=os.getenv(
                "DATABASE_URL",
                f"sqlite+aiosqlite:///{DB_DIR / 'salesdesk.db'}",
            ),
            sql_echo=_env_bool("SQL_DEBUG"),
            jwt_secret_key=secret,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(24 * 60))),
            refresh_token_expire_days=int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7")),
            token_issuer=os.getenv("TOKEN_ISSUER", "salesdesk-api"),
            token_audience=os.getenv("TOKEN_AUDIENCE", "salesdesk-app"),
            session_ttl_hours=int(os.getenv("SESSION_TTL_HOURS", "24")),
            session_sweep_interval_seconds=int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "3600")),
            password_time_cost=int(os.getenv("PASSWORD_TIME_COST", "3")),
            password_memory_cost=int(os.getenv("PASSWORD_MEMORY_COST", "65536")),
            password_parallelism=int(os.getenv("PASSWORD_PARALLELISM", "4")),
            login_rate_limit_attempts=int(os.getenv("LOGIN_RATE_LIMIT_ATTEMPTS", "5")),
            login_rate_limit_window_seconds=int(os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "900")),
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:3000"),
            trusted_hosts=_env_list("TRUSTED_HOSTS", "*"),
            enable_docs=_env_bool("ENABLE_DOCS", "true"),
            enable_hsts=_env_bool("ENABLE_HSTS"),
            create_default_admin=_env_bool("CREATE_DEFAULT_ADMIN", "true"),
        )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment."""
    return Settings.from_env()
