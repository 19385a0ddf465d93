from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class MessageType(str, Enum):
    TEXT = "text"
    AUDIO = "audio"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """Append-only chat entry attached to a consultation."""

    model_config = ConfigDict(extra="allow")

    id: str
    consulta_id: str
    user_id: Optional[str] = None
    tipo_mensagem: MessageType
    conteudo: str
    audio_url: Optional[str] = None
    created_at: Optional[datetime] = None
