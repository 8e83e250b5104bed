"""
Exception handlers.

Converts every failure into the error envelope with a stable ``code``.
"""


from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from salesdesk.auth.dependencies import get_client_ip, get_user_agent
from salesdesk.core.errors import AuthError, ErrorCode, STATUS_FOR_CODE
from salesdesk.core.logging import get_logger
from salesdesk.core.responses import error_response
from salesdesk.models.audit import ActivityAction

logger = get_logger(__name__)

_HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTHENTICATION_REQUIRED,
    403: ErrorCode.ACCESS_DENIED,
    404: ErrorCode.ROUTE_NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    409: ErrorCode.DUPLICATE_ENTRY,
    429: ErrorCode.LOGIN_RATE_LIMIT_EXCEEDED,
}


def _validation_details(exc: RequestValidationError) -> list[dict]:
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append({
            "field": ".".join(location),
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type"),
        })
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-producing exception handlers on ``app``."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        if exc.status_code >= 500:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                code=exc.code.value,
                error=exc.message,
            )
        return error_response(
            exc.code.value,
            exc.message,
            exc.status_code,
            details=exc.details,
            headers=exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_SERVER_ERROR)
        if exc.status_code == 404:
            message = f"Route {request.method} {request.url.path} not found"
        elif exc.status_code == 405:
            message = f"Method {request.method} not allowed on {request.url.path}"
        else:
            message = str(exc.detail)
        return error_response(code.value, message, exc.status_code, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        details = _validation_details(exc)
        logger.warning("validation_failed", path=request.url.path, fields=[d["field"] for d in details])
        return error_response(
            ErrorCode.VALIDATION_ERROR.value,
            "Invalid request data",
            STATUS_FOR_CODE[ErrorCode.VALIDATION_ERROR],
            details=details,
        )

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))
        return error_response(
            ErrorCode.DUPLICATE_ENTRY.value,
            "A record with the same unique value already exists",
            STATUS_FOR_CODE[ErrorCode.DUPLICATE_ENTRY],
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception("unhandled_error", method=request.method, path=request.url.path)

        context = getattr(request.app.state, "context", None)
        if context is not None:
            principal = getattr(request.state, "principal", None)
            context.recorder.log(
                ActivityAction.ERROR,
                user_id=principal.id if principal else None,
                entity_type="request",
                entity_id=f"{request.method} {request.url.path}",
                new_values={"errorType": type(exc).__name__},
                ip_address=get_client_ip(request),
                user_agent=get_user_agent(request),
                notes=str(exc)[:1000],
            )

        details = None
        if context is not None and context.settings.is_development:
            details = {"type": type(exc).__name__, "message": str(exc)}

        return error_response(
            ErrorCode.INTERNAL_SERVER_ERROR.value,
            "Internal server error",
            500,
            details=details,
        )
