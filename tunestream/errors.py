from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class TunestreamError(Exception):
    status_code: int = 500
    message: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ResourceNotFound(TunestreamError):
    status_code = 404
    message = "Song not found"


class UnsatisfiableRange(TunestreamError):
    status_code = 416
    message = "Range Not Satisfiable"

    def __init__(self, total: int) -> None:
        super().__init__()
        self.total = total


class OriginUnavailable(TunestreamError):
    status_code = 502
    message = "Failed to stream audio"


class AuthenticationRequired(TunestreamError):
    status_code = 401
    message = "Unauthorized access"


class AccessDenied(TunestreamError):
    status_code = 403
    message = "Access forbidden"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "message": message, "data": data, "timestamp": _timestamp()},
    )


def error_response(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "timestamp": _timestamp()},
    )


async def handle_tunestream_error(request: Request, exc: TunestreamError) -> Response:
    if isinstance(exc, UnsatisfiableRange):
        return Response(status_code=416, headers={"Content-Range": f"bytes */{exc.total}"})
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    response = error_response(exc.message, exc.status_code)
    if isinstance(exc, AuthenticationRequired):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


async def handle_unexpected_error(request: Request, exc: Exception) -> Response:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return error_response("Internal Server Error", 500)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TunestreamError, handle_tunestream_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
