from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Optional

from src.clinic_api.domain.models.consultation import Consultation, ConsultationStatus
from src.clinic_api.domain.models.pagination import Page, PageRequest
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.errors import BadRequest, Forbidden, InternalError, NotFound
from src.clinic_api.infra.backend import procedures
from src.clinic_api.infra.backend.client import BackendClient, BackendError, Embed, Query
from src.clinic_api.services.error_mapping import NO_PERMISSION, NOT_FOUND, ErrorRule, raise_backend_error

logger = logging.getLogger("backend")

PATIENT_SUMMARY = Embed(
    "patients",
    ("id", "nome", "cpf"),
    local_key="paciente_id",
    foreign_key="id",
    hint="consultations_paciente_id_fkey",
)
PROFESSIONAL_SUMMARY = Embed(
    "users",
    ("id", "nome", "sobrenome", "especialidade"),
    local_key="profissional_id",
    foreign_key="id",
    hint="consultations_profissional_id_fkey",
)

DETAIL_EMBEDS = (
    Embed(
        "patients",
        ("id", "nome", "cpf", "data_nascimento", "telefone"),
        local_key="paciente_id",
        foreign_key="id",
        hint="consultations_paciente_id_fkey",
    ),
    Embed(
        "users",
        ("id", "nome", "sobrenome", "especialidade", "crm"),
        local_key="profissional_id",
        foreign_key="id",
        hint="consultations_profissional_id_fkey",
    ),
    Embed(
        "transcriptions",
        ("id", "texto_completo", "audio_url", "duracao_audio_segundos", "idioma", "confianca_score"),
        local_key="id",
        foreign_key="consulta_id",
        many=True,
    ),
    Embed(
        "analysis_results",
        (
            "id",
            "diagnostico",
            "exames_sugeridos",
            "medicamentos_sugeridos",
            "notas_clinicas",
            "nivel_confianca",
            "modelo_ia",
        ),
        local_key="id",
        foreign_key="consulta_id",
        many=True,
    ),
)

_NOT_FOUND = ErrorRule(NOT_FOUND, NotFound, "Consultation not found")

_CREATE_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to create consultations"),
    ErrorRule(NOT_FOUND, NotFound, "Patient not found"),
)
_UPDATE_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to update this consultation"),
    _NOT_FOUND,
    ErrorRule(("invalid status", "status inválido", "status invalido"), BadRequest, "Invalid status"),
)
_DELETE_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to delete this consultation"),
    _NOT_FOUND,
)


@dataclass(frozen=True)
class ConsultationFilters:
    status: Optional[ConsultationStatus] = None
    paciente_id: Optional[str] = None
    profissional_id: Optional[str] = None
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None


class ConsultationService:
    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def create(
        self,
        context: WorkspaceContext,
        *,
        paciente_id: str,
        queixa_principal: Optional[str] = None,
    ) -> Consultation:
        """Open a consultation with the caller as the responsible professional."""

        try:
            row = await self._backend.rpc(
                procedures.CREATE_CONSULTATION,
                {
                    "p_workspace_id": context.workspace_id,
                    "p_paciente_id": paciente_id,
                    "p_queixa_principal": queixa_principal,
                },
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _CREATE_RULES, fallback="Failed to create consultation")
        return Consultation.model_validate(row)

    async def list(
        self,
        context: WorkspaceContext,
        page: PageRequest,
        filters: ConsultationFilters = ConsultationFilters(),
    ) -> Page[Consultation]:
        query = (
            Query("consultations")
            .embed(PATIENT_SUMMARY)
            .embed(PROFESSIONAL_SUMMARY)
            .eq("workspace_id", context.workspace_id)
            .order_by("iniciada_em", descending=True)
        )
        if filters.status is not None:
            query = query.eq("status", filters.status.value)
        if filters.paciente_id:
            query = query.eq("paciente_id", filters.paciente_id)
        if filters.profissional_id:
            query = query.eq("profissional_id", filters.profissional_id)
        if filters.data_inicio:
            query = query.gte("iniciada_em", filters.data_inicio.isoformat())
        if filters.data_fim:
            # Inclusive end date: everything before the following midnight.
            query = query.lt("iniciada_em", (filters.data_fim + timedelta(days=1)).isoformat())

        try:
            result = await self._backend.select(
                query.paginate(page.page, page.limit).with_count(),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to list consultations of %s: %s", context.workspace_id, exc.message)
            raise InternalError("Failed to fetch consultations") from exc

        return Page[Consultation](
            items=[Consultation.model_validate(row) for row in result.rows],
            total=result.count or 0,
            page=page.page,
            limit=page.limit,
        )

    async def get(self, context: WorkspaceContext, consultation_id: str) -> Dict[str, Any]:
        query = Query("consultations").eq("id", consultation_id).eq("workspace_id", context.workspace_id)
        for embed in DETAIL_EMBEDS:
            query = query.embed(embed)
        try:
            row = await self._backend.select_one(query, access_token=context.access_token)
        except BackendError as exc:
            logger.error("Failed to load consultation %s: %s", consultation_id, exc.message)
            raise InternalError("Failed to fetch consultation") from exc
        if row is None:
            raise NotFound("Consultation not found")
        return row

    async def get_owner_id(self, context: WorkspaceContext, consultation_id: str) -> Optional[str]:
        """Return the responsible professional of a consultation in this workspace (404 otherwise)."""

        try:
            row = await self._backend.select_one(
                Query("consultations")
                .select("profissional_id")
                .eq("id", consultation_id)
                .eq("workspace_id", context.workspace_id),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load consultation %s: %s", consultation_id, exc.message)
            raise InternalError("Failed to fetch consultation") from exc
        if row is None:
            raise NotFound("Consultation not found")
        return row.get("profissional_id")

    async def update(self, context: WorkspaceContext, consultation_id: str, values: Dict[str, Any]) -> Consultation:
        await self.get_owner_id(context, consultation_id)
        try:
            row = await self._backend.rpc(
                procedures.UPDATE_CONSULTATION,
                {
                    "p_consultation_id": consultation_id,
                    "p_queixa_principal": values.get("queixa_principal"),
                    "p_status": values.get("status"),
                    "p_concluida_em": values.get("concluida_em"),
                },
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _UPDATE_RULES, fallback="Failed to update consultation")
        return Consultation.model_validate(row)

    async def delete(self, context: WorkspaceContext, consultation_id: str) -> None:
        await self.get_owner_id(context, consultation_id)
        try:
            await self._backend.rpc(
                procedures.DELETE_CONSULTATION,
                {"p_consultation_id": consultation_id},
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _DELETE_RULES, fallback="Failed to delete consultation")
