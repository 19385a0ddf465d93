from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from src.clinic_api.config import Settings
from src.clinic_api.domain.models.user import Principal, UserProfile
from src.clinic_api.domain.models.workspace import WorkspaceSummary
from src.clinic_api.errors import BadRequest, Conflict, InternalError, NotFound, Unauthenticated
from src.clinic_api.infra.backend import procedures
from src.clinic_api.infra.backend.client import BackendAuthError, BackendClient, BackendError, Embed, Query
from src.clinic_api.services.error_mapping import ALREADY_IN_USE, ErrorRule, raise_backend_error
from src.clinic_api.utils.slug import generate_slug, is_valid_slug

logger = logging.getLogger("auth")

PASSWORD_RESET_MESSAGE = "If the email exists, you will receive instructions to reset your password"

_ONBOARDING_RULES = (
    ErrorRule(("already completed", "já foi completado", "ja foi completado"), Conflict, "Onboarding already completed"),
    ErrorRule(ALREADY_IN_USE, Conflict, "Workspace slug already in use"),
)


class AuthService:
    """Sign-up, sign-in and onboarding on top of the identity provider."""

    def __init__(self, backend: BackendClient, settings: Settings) -> None:
        self._backend = backend
        self._settings = settings

    async def signup(self, *, nome: str, sobrenome: str, email: str, senha: str) -> Dict[str, Any]:
        try:
            result = await self._backend.auth.sign_up(email, senha)
        except BackendAuthError as exc:
            if exc.status is not None and exc.status >= 500:
                logger.error("Identity provider failed during sign-up: %s", exc.message)
                raise InternalError("Failed to create user") from exc
            raise BadRequest(exc.message) from exc
        except BackendError as exc:
            logger.error("Sign-up request did not reach the identity provider: %s", exc.message)
            raise InternalError("Failed to create user") from exc

        if result.user is None:
            raise InternalError("Failed to create user")

        access_token = result.session.access_token if result.session else None
        try:
            await self._backend.rpc(
                procedures.UPDATE_USER_PROFILE,
                {"p_user_id": result.user.id, "p_nome": nome, "p_sobrenome": sobrenome},
                access_token=access_token,
            )
        except BackendError as exc:
            logger.error("Failed to store profile for user %s: %s", result.user.id, exc.message)
            raise InternalError("Failed to update user profile") from exc

        user = result.user.model_dump()
        user.update({"nome": nome, "sobrenome": sobrenome})
        return {
            "user": user,
            "session": result.session.model_dump() if result.session else None,
        }

    async def login(self, *, email: str, senha: str) -> Dict[str, Any]:
        try:
            result = await self._backend.auth.sign_in_with_password(email, senha)
        except BackendAuthError as exc:
            logger.info("Failed sign-in: %s", exc.message)
            raise Unauthenticated("Invalid email or password") from exc
        except BackendError as exc:
            logger.error("Identity provider error during sign-in: %s", exc.message)
            raise InternalError("Failed to sign in") from exc

        if result.user is None or result.session is None:
            raise InternalError("Failed to sign in")

        principal = Principal(id=result.user.id, email=result.user.email, access_token=result.session.access_token)
        profile = await self._load_profile(principal)
        workspaces = await self.list_workspaces(principal)
        return {
            "user": profile.model_dump(mode="json"),
            "session": result.session.model_dump(),
            "workspaces": [w.model_dump(mode="json") for w in workspaces],
            "onboarding_completo": profile.onboarding,
        }

    async def logout(self, access_token: Optional[str]) -> None:
        if not access_token:
            return
        try:
            await self._backend.auth.sign_out(access_token)
        except BackendAuthError:
            # An already revoked or expired token leaves nothing to sign out.
            logger.info("Sign-out with an unknown token")
        except BackendError as exc:
            logger.error("Identity provider error during sign-out: %s", exc.message)
            raise InternalError("Failed to log out") from exc

    def forgot_password(self, email: str) -> Dict[str, Any]:
        # The same answer whether or not the address is registered.
        body: Dict[str, Any] = {"message": PASSWORD_RESET_MESSAGE}
        if self._settings.is_development:
            body["dev_note"] = "In production the reset token would be sent by email"
        return body

    def reset_password(self, token: str, nova_senha: str) -> Dict[str, Any]:
        # TODO: verify the reset token and update the password once reset tokens are issued by forgot_password.
        if not token or not token.strip():
            raise BadRequest("Invalid token")
        body: Dict[str, Any] = {"message": "Password reset successfully"}
        if self._settings.is_development:
            body["dev_note"] = "Reset tokens are not verified yet"
        return body

    async def get_me(self, principal: Principal) -> Dict[str, Any]:
        profile = await self._load_profile(principal)
        return {"user": profile.model_dump(mode="json"), "onboarding_completo": profile.onboarding}

    async def list_workspaces(self, principal: Principal) -> List[WorkspaceSummary]:
        query = (
            Query("workspace_members")
            .select("workspace_id", "role")
            .embed(
                Embed(
                    "workspaces",
                    ("id", "slug", "nome", "status_assinatura"),
                    local_key="workspace_id",
                    foreign_key="id",
                )
            )
            .eq("user_id", principal.id)
            .eq("ativo", True)
        )
        try:
            result = await self._backend.select(query, access_token=principal.access_token)
        except BackendError as exc:
            logger.error("Failed to list workspaces for %s: %s", principal.id, exc.message)
            raise InternalError("Failed to fetch workspaces") from exc

        summaries = []
        for row in result.rows:
            workspace = row.get("workspaces")
            if not workspace:
                continue
            summaries.append(
                WorkspaceSummary(
                    id=workspace["id"],
                    slug=workspace["slug"],
                    nome=workspace["nome"],
                    role=row["role"],
                    status_assinatura=workspace["status_assinatura"],
                )
            )
        return summaries

    async def complete_onboarding(
        self,
        principal: Principal,
        *,
        nome_workspace: str,
        slug: Optional[str] = None,
    ) -> Dict[str, Any]:
        workspace_slug = slug or generate_slug(nome_workspace)
        if not is_valid_slug(workspace_slug):
            raise BadRequest("Could not derive a valid slug from the workspace name")

        try:
            result = await self._backend.rpc(
                procedures.COMPLETE_ONBOARDING,
                {"p_workspace_slug": workspace_slug, "p_workspace_nome": nome_workspace},
                access_token=principal.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _ONBOARDING_RULES, fallback="Failed to complete onboarding")

        if not result:
            raise InternalError("Failed to complete onboarding")

        return {
            "workspace": {
                "id": result["workspace_id"],
                "slug": result["workspace_slug"],
                "nome": result["workspace_nome"],
            },
            "onboarding_completo": bool(result.get("user_onboarding")),
        }

    async def _load_profile(self, principal: Principal) -> UserProfile:
        try:
            row = await self._backend.select_one(
                Query("users").eq("id", principal.id),
                access_token=principal.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load profile %s: %s", principal.id, exc.message)
            raise InternalError("Failed to fetch user") from exc
        if row is None:
            raise NotFound("User not found")
        return UserProfile.model_validate(row)
