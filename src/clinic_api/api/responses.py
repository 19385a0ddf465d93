"""Success envelopes shared by every route: ``{message?, data}`` and the paginated variant."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder

from src.clinic_api.domain.models.pagination import Page


def envelope(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {}
    if message is not None:
        body["message"] = message
    body["data"] = jsonable_encoder(data)
    return body


def message_only(message: str) -> Dict[str, Any]:
    return {"message": message}


def paginated(page: Page[Any]) -> Dict[str, Any]:
    return {
        "data": jsonable_encoder(page.items),
        "pagination": page.pagination().model_dump(),
    }
