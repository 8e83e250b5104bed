"""
Response envelope.

Every body the API returns, success or error, has the same top-level shape:
``{success, message, code, statusCode, timestamp, data?, details?}``.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

SUCCESS_CODE = "SUCCESS"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def success_response(
    data: Any = None,
    message: str = "Operation completed successfully",
    status_code: int = 200,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = {
        "success": True,
        "message": message,
        "code": SUCCESS_CODE,
        "statusCode": status_code,
        "timestamp": _timestamp(),
    }
    if data is not None:
        body["data"] = jsonable_encoder(data, by_alias=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = {
        "success": False,
        "message": message,
        "code": code,
        "statusCode": status_code,
        "timestamp": _timestamp(),
    }
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=status_code, content=body, headers=headers)
