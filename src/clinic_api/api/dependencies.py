from __future__ import annotations

from fastapi import Depends, Request

from src.clinic_api.config import Settings
from src.clinic_api.infra.backend.client import BackendClient
from src.clinic_api.services.auth.service import AuthService
from src.clinic_api.services.chat.service import ChatService
from src.clinic_api.services.consultations.service import ConsultationService
from src.clinic_api.services.members.service import MemberService
from src.clinic_api.services.patients.service import PatientService
from src.clinic_api.services.workspaces.service import WorkspaceService


def get_backend(request: Request) -> BackendClient:
    """Return the backend client created by the application factory."""

    return request.app.state.backend


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(
    backend: BackendClient = Depends(get_backend),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(backend, settings)


def get_workspace_service(backend: BackendClient = Depends(get_backend)) -> WorkspaceService:
    return WorkspaceService(backend)


def get_member_service(backend: BackendClient = Depends(get_backend)) -> MemberService:
    return MemberService(backend)


def get_patient_service(backend: BackendClient = Depends(get_backend)) -> PatientService:
    return PatientService(backend)


def get_consultation_service(backend: BackendClient = Depends(get_backend)) -> ConsultationService:
    return ConsultationService(backend)


def get_chat_service(backend: BackendClient = Depends(get_backend)) -> ChatService:
    return ChatService(backend)
