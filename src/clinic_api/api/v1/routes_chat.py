from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.clinic_api.api.dependencies import get_chat_service
from src.clinic_api.api.responses import envelope, paginated
from src.clinic_api.api.v1.fields import MessageContent, chat_page_params
from src.clinic_api.domain.models.chat_message import MessageType
from src.clinic_api.domain.models.pagination import PageRequest
from src.clinic_api.domain.models.user import UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.services.audit.service import audit_service
from src.clinic_api.services.chat.service import ChatService
from src.clinic_api.tenancy import get_workspace_context, require_roles


router = APIRouter(prefix="/{workspace_slug}/chat", tags=["chat"])


class ChatMessageRequest(BaseModel):
    consulta_id: UUID
    tipo_mensagem: MessageType = MessageType.TEXT
    conteudo: MessageContent
    audio_url: Optional[str] = None


@router.post("/message", status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: ChatMessageRequest,
    context: WorkspaceContext = Depends(require_roles(UserRole.ADMIN, UserRole.PROFESSIONAL)),
    service: ChatService = Depends(get_chat_service),
) -> dict:
    message = await service.send(
        context,
        consulta_id=str(payload.consulta_id),
        conteudo=payload.conteudo,
        tipo_mensagem=payload.tipo_mensagem,
        audio_url=payload.audio_url,
    )
    audit_service.log_event(
        action="send_chat_message",
        resource_type="chat_message",
        resource_id=message.id,
        workspace_id=context.workspace_id,
        extra={"consultation_id": message.consulta_id, "type": message.tipo_mensagem.value},
    )
    return envelope(message, "Message sent successfully")


@router.get("/{consultation_id}")
async def get_history(
    consultation_id: UUID,
    page: PageRequest = Depends(chat_page_params),
    context: WorkspaceContext = Depends(get_workspace_context),
    service: ChatService = Depends(get_chat_service),
) -> dict:
    return paginated(await service.history(context, str(consultation_id), page))


@router.get("/{consultation_id}/last")
async def get_last_message(
    consultation_id: UUID,
    context: WorkspaceContext = Depends(get_workspace_context),
    service: ChatService = Depends(get_chat_service),
) -> dict:
    return envelope(await service.last_message(context, str(consultation_id)))
