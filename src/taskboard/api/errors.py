"""Error → HTTP mapping and envelope-shaped exception handlers.

Services raise domain exceptions; routes convert them with to_http().
The handlers registered here make every error response look like
{"success": false, "error": "...", "message": "..."}.
"""

import traceback

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskboard.config import settings
from taskboard.services.errors import (
    IdPError,
    NotFoundError,
    ServiceError,
    ValidationError,
)

logger = structlog.get_logger()

_DEFAULT_MESSAGES = {
    404: "The requested resource was not found",
}


def to_http(e: ServiceError) -> HTTPException:
    """Map a service-layer exception onto an HTTPException."""
    if isinstance(e, NotFoundError):
        status = 404
    elif isinstance(e, ValidationError):
        status = 400
    elif isinstance(e, IdPError):
        status = e.status_code
    else:
        status = 500
    return HTTPException(status_code=status, detail={"error": e.error, "message": e.message})


def error_response(status_code: int, error: str, message: str | None = None, headers=None) -> JSONResponse:
    content = {"success": False, "error": error}
    if message is not None:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        error = detail.get("error", "Error")
        message = detail.get("message")
    else:
        error = str(detail)
        message = _DEFAULT_MESSAGES.get(exc.status_code)
    return error_response(exc.status_code, error, message, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query schema errors are plain 400s, like the rest of validation."""
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return error_response(400, "Validation error", "; ".join(problems))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_error", path=request.url.path)
    message = (
        "".join(traceback.format_exception(exc))
        if settings.is_development
        else "Something went wrong"
    )
    return error_response(500, str(exc) or "Internal Server Error", message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
