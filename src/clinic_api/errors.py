"""Typed failures raised by every stage of the request pipeline.

Each failure carries the HTTP status it maps to and, for validation failures,
a list of ``{"field", "message"}`` details. The boundary responder in
``api/error_handlers.py`` turns them into the JSON error envelope.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base failure carrier: message, HTTP status and optional detail list."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": "error", "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(AppError):
    status_code = 400

    def __init__(self, details: List[Dict[str, Any]], message: str = "Validation error") -> None:
        super().__init__(message, details=details)


class BadRequest(AppError):
    status_code = 400


class Conflict(AppError):
    """Duplicate or bad-state failures (duplicate slug, second ADMIN, ...)."""

    status_code = 400


class Unauthenticated(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class InternalError(AppError):
    status_code = 500
