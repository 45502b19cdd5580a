"""Translation of exceptions into HTTP error responses.

Single place where errors become ``{message, stack?}`` JSON bodies.
"""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from backend.app.config import Settings, get_settings
from backend.app.errors import ApiError

logger = logging.getLogger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def error_response(exc: Exception, settings: Settings) -> JSONResponse:
    """Build the error response for any exception.

    Args:
        exc: Raised exception
        settings: Settings (decides whether 5xx bodies include a stack)

    Returns:
        JSON response with status, body and headers for the error
    """
    headers: dict[str, str] = {}

    if isinstance(exc, ApiError):
        status_code = exc.status_code
        message = exc.message
        headers = exc.headers()
    elif isinstance(exc, HTTPException):
        status_code = exc.status_code
        message = str(exc.detail)
        headers = dict(exc.headers or {})
    elif isinstance(exc, RequestValidationError):
        status_code = 400
        message = _validation_message(exc)
    else:
        status_code = 500
        message = "Internal server error"

    body: dict[str, str] = {"message": message}
    if status_code >= 500 and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _settings_for(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc, _settings_for(request))


async def _handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(exc, _settings_for(request))


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(exc, _settings_for(request))


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error: %s",
        exc,
        exc_info=exc,
        extra={"structured": {"method": request.method, "path": request.url.path}},
    )
    return error_response(exc, _settings_for(request))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error translators on the app."""
    app.add_exception_handler(ApiError, _handle_api_error)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected)
