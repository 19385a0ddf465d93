from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.clinic_api.api.dependencies import get_auth_service
from src.clinic_api.api.responses import envelope, message_only
from src.clinic_api.api.v1.fields import Email, NonEmpty, Password, PersonName, Slug, WorkspaceName
from src.clinic_api.domain.models.user import Principal
from src.clinic_api.security import ensure_onboarding_pending, get_current_principal, get_optional_token
from src.clinic_api.services.audit.service import audit_service
from src.clinic_api.services.auth.service import AuthService


router = APIRouter(prefix="/auth", tags=["auth"])


class SignupRequest(BaseModel):
    nome: PersonName
    sobrenome: PersonName
    email: Email
    senha: Password


class LoginRequest(BaseModel):
    email: Email
    senha: NonEmpty


class ForgotPasswordRequest(BaseModel):
    email: Email


class ResetPasswordRequest(BaseModel):
    token: NonEmpty
    nova_senha: Password


class OnboardingRequest(BaseModel):
    nome_workspace: WorkspaceName
    slug: Optional[Slug] = None


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, service: AuthService = Depends(get_auth_service)) -> dict:
    result = await service.signup(
        nome=payload.nome,
        sobrenome=payload.sobrenome,
        email=payload.email,
        senha=payload.senha,
    )
    user_id = result["user"]["id"]
    audit_service.log_event(action="signup", resource_type="user", resource_id=user_id, subject=user_id)
    return envelope(result, "User created successfully")


@router.post("/login")
async def login(payload: LoginRequest, service: AuthService = Depends(get_auth_service)) -> dict:
    result = await service.login(email=payload.email, senha=payload.senha)
    user_id = result["user"]["id"]
    audit_service.log_event(action="login", resource_type="session", resource_id=user_id, subject=user_id)
    return envelope(result, "Logged in successfully")


@router.post("/logout")
async def logout(
    access_token: Optional[str] = Depends(get_optional_token),
    service: AuthService = Depends(get_auth_service),
) -> dict:
    await service.logout(access_token)
    return message_only("Logged out successfully")


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)) -> dict:
    return service.forgot_password(payload.email)


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)) -> dict:
    return service.reset_password(payload.token, payload.nova_senha)


@router.get("/me")
async def get_me(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> dict:
    return envelope(await service.get_me(principal))


@router.get("/workspaces")
async def list_my_workspaces(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
) -> dict:
    return envelope(await service.list_workspaces(principal))


@router.post("/onboarding", status_code=status.HTTP_201_CREATED)
async def complete_onboarding(
    payload: OnboardingRequest,
    principal: Principal = Depends(ensure_onboarding_pending),
    service: AuthService = Depends(get_auth_service),
) -> dict:
    result = await service.complete_onboarding(
        principal,
        nome_workspace=payload.nome_workspace,
        slug=payload.slug,
    )
    audit_service.log_event(
        action="complete_onboarding",
        resource_type="workspace",
        resource_id=result["workspace"]["id"],
        workspace_id=result["workspace"]["id"],
    )
    return envelope(result, "Onboarding completed successfully")
