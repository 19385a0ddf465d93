from __future__ import annotations

import logging
from typing import Optional

from src.clinic_api.domain.models.chat_message import ChatMessage, MessageType
from src.clinic_api.domain.models.pagination import Page, PageRequest
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.errors import BadRequest, Forbidden, InternalError, NotFound
from src.clinic_api.infra.backend import procedures
from src.clinic_api.infra.backend.client import BackendClient, BackendError, Embed, Query
from src.clinic_api.services.error_mapping import NO_PERMISSION, NOT_FOUND, ErrorRule, raise_backend_error

logger = logging.getLogger("backend")

SENDER = Embed(
    "users",
    ("id", "nome", "sobrenome", "avatar_url"),
    local_key="user_id",
    foreign_key="id",
    hint="chat_messages_user_id_fkey",
)

_SEND_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to send messages"),
    ErrorRule(NOT_FOUND, NotFound, "Consultation not found"),
    ErrorRule(("invalid message type", "tipo de mensagem inválido", "tipo de mensagem invalido"), BadRequest, "Invalid message type"),
)


class ChatService:
    """Append-only message log attached to a consultation."""

    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def _ensure_consultation(self, context: WorkspaceContext, consultation_id: str) -> None:
        try:
            row = await self._backend.select_one(
                Query("consultations").select("id").eq("id", consultation_id).eq("workspace_id", context.workspace_id),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load consultation %s: %s", consultation_id, exc.message)
            raise InternalError("Failed to fetch consultation") from exc
        if row is None:
            raise NotFound("Consultation not found")

    async def send(
        self,
        context: WorkspaceContext,
        *,
        consulta_id: str,
        conteudo: str,
        tipo_mensagem: MessageType = MessageType.TEXT,
        audio_url: Optional[str] = None,
    ) -> ChatMessage:
        await self._ensure_consultation(context, consulta_id)
        try:
            row = await self._backend.rpc(
                procedures.CREATE_CHAT_MESSAGE,
                {
                    "p_consulta_id": consulta_id,
                    "p_tipo_mensagem": tipo_mensagem.value,
                    "p_conteudo": conteudo,
                    "p_audio_url": audio_url,
                },
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _SEND_RULES, fallback="Failed to send message")
        return ChatMessage.model_validate(row)

    async def history(self, context: WorkspaceContext, consultation_id: str, page: PageRequest) -> Page[ChatMessage]:
        await self._ensure_consultation(context, consultation_id)
        query = (
            Query("chat_messages")
            .embed(SENDER)
            .eq("consulta_id", consultation_id)
            .order_by("created_at")
            .paginate(page.page, page.limit)
            .with_count()
        )
        try:
            result = await self._backend.select(query, access_token=context.access_token)
        except BackendError as exc:
            logger.error("Failed to list messages of consultation %s: %s", consultation_id, exc.message)
            raise InternalError("Failed to fetch messages") from exc

        return Page[ChatMessage](
            items=[ChatMessage.model_validate(row) for row in result.rows],
            total=result.count or 0,
            page=page.page,
            limit=page.limit,
        )

    async def last_message(self, context: WorkspaceContext, consultation_id: str) -> Optional[ChatMessage]:
        await self._ensure_consultation(context, consultation_id)
        try:
            row = await self._backend.select_one(
                Query("chat_messages").eq("consulta_id", consultation_id).order_by("created_at", descending=True),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load last message of consultation %s: %s", consultation_id, exc.message)
            raise InternalError("Failed to fetch last message") from exc
        return ChatMessage.model_validate(row) if row else None
