from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NoReturn, Optional, Sequence, Tuple, Type

from src.clinic_api.errors import AppError, InternalError
from src.clinic_api.infra.backend.client import BackendError


logger = logging.getLogger("backend")


@dataclass(frozen=True)
class ErrorRule:
    """Classify a backend failure by substrings of its message.

    ``markers`` are compared case-insensitively; the first rule with any
    matching marker wins. When ``message`` is ``None`` the backend's own
    message is passed through to the client.
    """

    markers: Tuple[str, ...]
    error_class: Type[AppError]
    message: Optional[str] = None

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(marker.lower() in lowered for marker in self.markers)


# Markers shared by most procedures. The Portuguese wording is what the
# production procedures raise.
NO_PERMISSION = ("no permission", "sem permissão", "sem permissao")
NOT_FOUND = ("not found", "não encontrad", "nao encontrad")
ALREADY_EXISTS = ("already exists", "já cadastrado", "ja cadastrado")
ALREADY_IN_USE = ("already in use", "já está em uso", "ja esta em uso")


def raise_backend_error(
    exc: BackendError,
    rules: Sequence[ErrorRule],
    *,
    fallback: str = "Operation failed",
) -> NoReturn:
    """Raise the typed failure matching ``exc``, or a generic 500.

    The remote message is only logged for unmatched failures; it never reaches
    the client in that case.
    """

    text = exc.message or ""
    for rule in rules:
        if rule.matches(text):
            raise rule.error_class(rule.message or text) from exc

    logger.error("Unclassified backend error (code=%s, status=%s): %s", exc.code, exc.status, text)
    raise InternalError(fallback) from exc
