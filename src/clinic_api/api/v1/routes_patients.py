from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, PastDate

from src.clinic_api.api.dependencies import get_patient_service
from src.clinic_api.api.responses import envelope, message_only, paginated
from src.clinic_api.api.v1.fields import MAX_PAGE_SIZE, Address, Cpf, Email, Notes, PatientName, Phone, page_params
from src.clinic_api.domain.models.pagination import PageRequest
from src.clinic_api.domain.models.user import UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.services.audit.service import audit_service
from src.clinic_api.services.patients.service import PatientService
from src.clinic_api.tenancy import get_workspace_context, require_roles


router = APIRouter(prefix="/{workspace_slug}/patients", tags=["patients"])

clinical_staff = require_roles(UserRole.ADMIN, UserRole.PROFESSIONAL)


class PatientCreateRequest(BaseModel):
    nome: PatientName
    data_nascimento: Optional[PastDate] = None
    cpf: Optional[Cpf] = None
    telefone: Optional[Phone] = None
    email: Optional[Email] = None
    endereco: Optional[Address] = None
    observacoes: Optional[Notes] = None


class PatientUpdateRequest(BaseModel):
    nome: Optional[PatientName] = None
    data_nascimento: Optional[PastDate] = None
    cpf: Optional[Cpf] = None
    telefone: Optional[Phone] = None
    email: Optional[Email] = None
    endereco: Optional[Address] = None
    observacoes: Optional[Notes] = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_patient(
    payload: PatientCreateRequest,
    context: WorkspaceContext = Depends(clinical_staff),
    service: PatientService = Depends(get_patient_service),
) -> dict:
    patient = await service.create(context, payload.model_dump(mode="json"))
    audit_service.log_event(
        action="create_patient",
        resource_type="patient",
        resource_id=patient.id,
        workspace_id=context.workspace_id,
    )
    return envelope(patient, "Patient created successfully")


@router.get("")
async def list_patients(
    page: PageRequest = Depends(page_params),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    context: WorkspaceContext = Depends(get_workspace_context),
    service: PatientService = Depends(get_patient_service),
) -> dict:
    return paginated(await service.list(context, page, search=search.strip() if search else None))


# Declared before "/{patient_id}" so that "search" is not parsed as an id.
@router.get("/search")
async def search_patients(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    context: WorkspaceContext = Depends(get_workspace_context),
    service: PatientService = Depends(get_patient_service),
) -> dict:
    return envelope(await service.search(context, q, limit))


@router.get("/{patient_id}")
async def get_patient(
    patient_id: UUID,
    context: WorkspaceContext = Depends(get_workspace_context),
    service: PatientService = Depends(get_patient_service),
) -> dict:
    return envelope(await service.get(context, str(patient_id)))


@router.patch("/{patient_id}")
async def update_patient(
    patient_id: UUID,
    payload: PatientUpdateRequest,
    context: WorkspaceContext = Depends(clinical_staff),
    service: PatientService = Depends(get_patient_service),
) -> dict:
    values = payload.model_dump(mode="json", exclude_none=True)
    patient = await service.update(context, str(patient_id), values)
    audit_service.log_event(
        action="update_patient",
        resource_type="patient",
        resource_id=str(patient_id),
        workspace_id=context.workspace_id,
        extra={"fields": sorted(values)},
    )
    return envelope(patient, "Patient updated successfully")


@router.delete("/{patient_id}")
async def delete_patient(
    patient_id: UUID,
    context: WorkspaceContext = Depends(clinical_staff),
    service: PatientService = Depends(get_patient_service),
) -> dict:
    await service.delete(context, str(patient_id))
    audit_service.log_event(
        action="delete_patient",
        resource_type="patient",
        resource_id=str(patient_id),
        workspace_id=context.workspace_id,
    )
    return message_only("Patient deleted successfully")
