"""
Structured logging.

Modules log through ``get_logger(__name__)`` with an event name and keyword
fields. The request-id middleware binds ``request_id`` into structlog's
context variables, so every event emitted while serving a request carries it.
"""

import logging
from typing import Any, Dict

import structlog

REDACTED = "[REDACTED]"
SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "apikey",
    "hash",
)


def _is_sensitive(key: Any) -> bool:
    normalized = str(key).lower().replace("-", "_")
    return any(marker in normalized for marker in SENSITIVE_KEYS)


def redact(value: Any) -> Any:
    """Return a copy of ``value`` with secret-looking keys masked at any depth."""
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive(key) else redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


def _redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Processor masking secret-looking event fields."""
    return redact(event_dict)


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        json_output: JSON lines when True, human-readable console output otherwise
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        # Loggers are module globals; caching would pin them to the first configuration
        cache_logger_on_first_use=False,
    )

    # uvicorn's access log duplicates the request event written by the middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)
