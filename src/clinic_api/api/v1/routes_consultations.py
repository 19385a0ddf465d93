from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from src.clinic_api.api.dependencies import get_consultation_service
from src.clinic_api.api.responses import envelope, message_only, paginated
from src.clinic_api.api.v1.fields import ChiefComplaint, page_params
from src.clinic_api.domain.models.consultation import ConsultationStatus
from src.clinic_api.domain.models.pagination import PageRequest
from src.clinic_api.domain.models.user import UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.errors import ValidationFailed
from src.clinic_api.security import ensure_owner_or_admin
from src.clinic_api.services.audit.service import audit_service
from src.clinic_api.services.consultations.service import ConsultationFilters, ConsultationService
from src.clinic_api.tenancy import get_workspace_context, require_roles


router = APIRouter(prefix="/{workspace_slug}/consultations", tags=["consultations"])

clinical_staff = require_roles(UserRole.ADMIN, UserRole.PROFESSIONAL)


class ConsultationCreateRequest(BaseModel):
    paciente_id: UUID
    queixa_principal: Optional[ChiefComplaint] = None


class ConsultationUpdateRequest(BaseModel):
    queixa_principal: Optional[ChiefComplaint] = None
    status: Optional[ConsultationStatus] = None
    concluida_em: Optional[datetime] = None


def consultation_filters(
    status: Optional[ConsultationStatus] = Query(None),
    paciente_id: Optional[UUID] = Query(None),
    profissional_id: Optional[UUID] = Query(None),
    data_inicio: Optional[date] = Query(None),
    data_fim: Optional[date] = Query(None),
) -> ConsultationFilters:
    if data_inicio and data_fim and data_fim < data_inicio:
        raise ValidationFailed([{"field": "data_fim", "message": "End date must be on or after the start date"}])
    return ConsultationFilters(
        status=status,
        paciente_id=str(paciente_id) if paciente_id else None,
        profissional_id=str(profissional_id) if profissional_id else None,
        data_inicio=data_inicio,
        data_fim=data_fim,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_consultation(
    payload: ConsultationCreateRequest,
    context: WorkspaceContext = Depends(clinical_staff),
    service: ConsultationService = Depends(get_consultation_service),
) -> dict:
    consultation = await service.create(
        context,
        paciente_id=str(payload.paciente_id),
        queixa_principal=payload.queixa_principal,
    )
    audit_service.log_event(
        action="create_consultation",
        resource_type="consultation",
        resource_id=consultation.id,
        workspace_id=context.workspace_id,
        extra={"patient_id": consultation.paciente_id},
    )
    return envelope(consultation, "Consultation created successfully")


@router.get("")
async def list_consultations(
    page: PageRequest = Depends(page_params),
    filters: ConsultationFilters = Depends(consultation_filters),
    context: WorkspaceContext = Depends(get_workspace_context),
    service: ConsultationService = Depends(get_consultation_service),
) -> dict:
    return paginated(await service.list(context, page, filters))


@router.get("/{consultation_id}")
async def get_consultation(
    consultation_id: UUID,
    context: WorkspaceContext = Depends(get_workspace_context),
    service: ConsultationService = Depends(get_consultation_service),
) -> dict:
    return envelope(await service.get(context, str(consultation_id)))


@router.patch("/{consultation_id}")
async def update_consultation(
    consultation_id: UUID,
    payload: ConsultationUpdateRequest,
    context: WorkspaceContext = Depends(clinical_staff),
    service: ConsultationService = Depends(get_consultation_service),
) -> dict:
    await ensure_owner_or_admin(context, lambda: service.get_owner_id(context, str(consultation_id)))

    values = payload.model_dump(mode="json", exclude_none=True)
    consultation = await service.update(context, str(consultation_id), values)
    audit_service.log_event(
        action="update_consultation",
        resource_type="consultation",
        resource_id=str(consultation_id),
        workspace_id=context.workspace_id,
        extra={"fields": sorted(values)},
    )
    return envelope(consultation, "Consultation updated successfully")


@router.delete("/{consultation_id}")
async def delete_consultation(
    consultation_id: UUID,
    context: WorkspaceContext = Depends(clinical_staff),
    service: ConsultationService = Depends(get_consultation_service),
) -> dict:
    await ensure_owner_or_admin(context, lambda: service.get_owner_id(context, str(consultation_id)))

    await service.delete(context, str(consultation_id))
    audit_service.log_event(
        action="delete_consultation",
        resource_type="consultation",
        resource_id=str(consultation_id),
        workspace_id=context.workspace_id,
    )
    return message_only("Consultation deleted successfully")
