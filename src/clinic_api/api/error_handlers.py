"""Global exception handlers producing the ``{status: "error", message, details?}`` envelope.

- AppError -> its declared status and message
- RequestValidationError -> 400 with the cumulative field-level detail list
- Starlette HTTPException (unknown route, wrong method) -> its status
- anything else -> 500 without internal details
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.clinic_api.errors import AppError

logger = logging.getLogger("errors")

_SECTIONS = {"body", "path", "query", "header", "cookie"}
_VALUE_ERROR_PREFIX = "Value error, "


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    _register_app_error_handler(app)
    _register_validation_error_handler(app)
    _register_http_exception_handler(app)
    _register_generic_error_handler(app)


def _register_app_error_handler(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        else:
            logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = validation_details(exc.errors())
        logger.info("Validation error on %s: %s", request.url.path, details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": "Validation error", "details": details},
        )


def _register_http_exception_handler(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": message},
            headers=getattr(exc, "headers", None),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all: never leaks internal details."""
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": "Internal server error"},
        )


def validation_details(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic errors into ``{"field", "message"}`` pairs.

    The field path is relative to its request section, so a body field is
    reported as ``email`` and a nested one as ``items.0.nome``.
    """

    details = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if len(loc) > 1 and loc[0] in _SECTIONS:
            loc = loc[1:]
        message = str(error.get("msg", "Invalid value"))
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        details.append({"field": ".".join(loc), "message": message})
    return details
