"""Domain exceptions and the FastAPI handlers that render them.

Services raise these exceptions; `main` registers the handlers so every
error leaves the API with the same JSON body:

    {"timestamp", "status", "error", "message", "path", "errors"?}
"""

from http import HTTPStatus
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .models import utcnow

logger = logging.getLogger("minidoodle.api")


class MiniDoodleError(Exception):
    """Base class for errors that map onto an HTTP status."""
    status_code = 500
    error = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ResourceNotFoundError(MiniDoodleError):
    """A referenced user, calendar, slot or meeting does not exist."""
    status_code = 404
    error = "Not Found"


class BusinessError(MiniDoodleError):
    """The request is well formed but breaks a scheduling rule."""
    status_code = 400
    error = "Bad Request"


class SlotConflictError(MiniDoodleError):
    """A time slot would overlap another slot of the same calendar."""
    status_code = 409
    error = "Conflict"


def error_body(status: int, error: str, message: str, path: str, errors: Optional[Dict[str, Any]] = None) -> dict:
    body = {
        "timestamp": utcnow().isoformat(),
        "status": status,
        "error": error,
        "message": message,
        "path": path,
    }
    if errors:
        body["errors"] = errors
    return body


async def minidoodle_exception_handler(request: Request, exc: MiniDoodleError) -> JSONResponse:
    logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.error, exc.message, request.url.path),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Framework errors such as unknown routes (404) and wrong methods (405)."""
    try:
        reason = HTTPStatus(exc.status_code).phrase
    except ValueError:
        reason = "Error"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, reason, str(exc.detail), request.url.path),
        headers=getattr(exc, "headers", None),
    )


def _field_name(loc) -> str:
    # drop the leading "body"/"query"/"path" segment
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = {}
    for err in exc.errors():
        errors.setdefault(_field_name(err.get("loc", ())), err.get("msg", "invalid value"))
    message = "; ".join(f"{field}: {msg}" for field, msg in errors.items())
    return JSONResponse(
        status_code=400,
        content=error_body(400, "Validation Failed", message or "Invalid request", request.url.path, errors),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body(500, "Internal Server Error", "An unexpected error occurred", request.url.path),
    )
