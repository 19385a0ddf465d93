from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from src.clinic_api.domain.models.pagination import Page, PageRequest
from src.clinic_api.domain.models.patient import Patient, PatientMatch
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.errors import Conflict, Forbidden, InternalError, NotFound
from src.clinic_api.infra.backend import procedures
from src.clinic_api.infra.backend.client import BackendClient, BackendError, Query
from src.clinic_api.services.error_mapping import (
    ALREADY_EXISTS,
    NO_PERMISSION,
    NOT_FOUND,
    ErrorRule,
    raise_backend_error,
)

logger = logging.getLogger("backend")

PATIENT_FIELDS = ("nome", "data_nascimento", "cpf", "telefone", "email", "endereco", "observacoes")
SEARCH_COLUMNS = ("nome", "cpf")
MIN_SEARCH_LENGTH = 2

_CPF_TAKEN = ErrorRule(ALREADY_EXISTS, Conflict, "A patient with this CPF already exists")
_NOT_FOUND = ErrorRule(NOT_FOUND, NotFound, "Patient not found")

_CREATE_RULES = (ErrorRule(NO_PERMISSION, Forbidden, "No permission to create patients"), _CPF_TAKEN)
_UPDATE_RULES = (ErrorRule(NO_PERMISSION, Forbidden, "No permission to update patients"), _NOT_FOUND, _CPF_TAKEN)
_DELETE_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to delete patients"),
    _NOT_FOUND,
    # The backend explains which records block the deletion; pass it through.
    ErrorRule(("has consultations", "possui"), Conflict),
)


def _procedure_params(values: Dict[str, Any]) -> Dict[str, Any]:
    return {f"p_{field}": values.get(field) for field in PATIENT_FIELDS}


class PatientService:
    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def create(self, context: WorkspaceContext, values: Dict[str, Any]) -> Patient:
        params = {"p_workspace_id": context.workspace_id, **_procedure_params(values)}
        try:
            row = await self._backend.rpc(procedures.CREATE_PATIENT, params, access_token=context.access_token)
        except BackendError as exc:
            raise_backend_error(exc, _CREATE_RULES, fallback="Failed to create patient")
        return Patient.model_validate(row)

    async def list(
        self,
        context: WorkspaceContext,
        page: PageRequest,
        search: Optional[str] = None,
    ) -> Page[Patient]:
        query = Query("patients").eq("workspace_id", context.workspace_id).order_by("created_at", descending=True)
        if search:
            query = query.any_ilike(SEARCH_COLUMNS, search)
        query = query.paginate(page.page, page.limit).with_count()

        try:
            result = await self._backend.select(query, access_token=context.access_token)
        except BackendError as exc:
            logger.error("Failed to list patients of %s: %s", context.workspace_id, exc.message)
            raise InternalError("Failed to fetch patients") from exc

        return Page[Patient](
            items=[Patient.model_validate(row) for row in result.rows],
            total=result.count or 0,
            page=page.page,
            limit=page.limit,
        )

    async def get(self, context: WorkspaceContext, patient_id: str) -> Dict[str, Any]:
        """Return the patient with its consultation count and most recent consultation."""

        token = context.access_token
        try:
            row = await self._backend.select_one(
                Query("patients").eq("id", patient_id).eq("workspace_id", context.workspace_id),
                access_token=token,
            )
            if row is None:
                raise NotFound("Patient not found")

            consultations = Query("consultations").eq("paciente_id", patient_id).eq("workspace_id", context.workspace_id)
            consultations_count = await self._backend.count(consultations, access_token=token)
            last_consultation = await self._backend.select_one(
                consultations.select("id", "status", "iniciada_em").order_by("iniciada_em", descending=True),
                access_token=token,
            )
        except BackendError as exc:
            logger.error("Failed to load patient %s: %s", patient_id, exc.message)
            raise InternalError("Failed to fetch patient") from exc

        return {
            "patient": Patient.model_validate(row).model_dump(mode="json"),
            "consultations_count": consultations_count,
            "last_consultation": last_consultation,
        }

    async def update(self, context: WorkspaceContext, patient_id: str, values: Dict[str, Any]) -> Patient:
        await self._ensure_in_workspace(context, patient_id)
        params = {"p_patient_id": patient_id, **_procedure_params(values)}
        try:
            row = await self._backend.rpc(procedures.UPDATE_PATIENT, params, access_token=context.access_token)
        except BackendError as exc:
            raise_backend_error(exc, _UPDATE_RULES, fallback="Failed to update patient")
        return Patient.model_validate(row)

    async def delete(self, context: WorkspaceContext, patient_id: str) -> None:
        await self._ensure_in_workspace(context, patient_id)
        try:
            await self._backend.rpc(
                procedures.DELETE_PATIENT,
                {"p_patient_id": patient_id},
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _DELETE_RULES, fallback="Failed to delete patient")

    async def search(self, context: WorkspaceContext, term: str, limit: int = 10) -> List[PatientMatch]:
        """Autocomplete on name or CPF; terms shorter than two characters match nothing."""

        term = term.strip()
        if len(term) < MIN_SEARCH_LENGTH:
            return []

        query = (
            Query("patients")
            .select("id", "nome", "cpf", "telefone")
            .eq("workspace_id", context.workspace_id)
            .any_ilike(SEARCH_COLUMNS, term)
            .order_by("nome")
            .limit_to(limit)
        )
        try:
            result = await self._backend.select(query, access_token=context.access_token)
        except BackendError as exc:
            logger.error("Failed to search patients of %s: %s", context.workspace_id, exc.message)
            raise InternalError("Failed to search patients") from exc
        return [PatientMatch.model_validate(row) for row in result.rows]

    async def _ensure_in_workspace(self, context: WorkspaceContext, patient_id: str) -> None:
        try:
            row = await self._backend.select_one(
                Query("patients").select("id").eq("id", patient_id).eq("workspace_id", context.workspace_id),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load patient %s: %s", patient_id, exc.message)
            raise InternalError("Failed to fetch patient") from exc
        if row is None:
            raise NotFound("Patient not found")
