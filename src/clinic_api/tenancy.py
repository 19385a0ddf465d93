from __future__ import annotations

import logging

from fastapi import Depends, Path

from src.clinic_api.api.dependencies import get_backend
from src.clinic_api.domain.models.user import Principal, UserRole
from src.clinic_api.domain.models.workspace import BLOCKED_STATUSES, SubscriptionStatus, WorkspaceContext
from src.clinic_api.errors import BadRequest, Forbidden, InternalError, NotFound
from src.clinic_api.infra.backend.client import BackendClient, BackendError, Query
from src.clinic_api.security import ensure_role, get_current_principal
from src.clinic_api.utils.slug import SLUG_PATTERN

logger = logging.getLogger("auth")

_KNOWN_STATUSES = frozenset(item.value for item in SubscriptionStatus)


async def resolve_workspace_context(
    backend: BackendClient,
    principal: Principal,
    workspace_slug: str,
) -> WorkspaceContext:
    """Resolve the caller's scope inside the workspace named by ``workspace_slug``.

    Checks run strictly in order and the first failure ends the request:
    missing slug (400), unknown workspace (404), no membership (403),
    inactive membership (403), suspended or cancelled workspace (403).
    Nothing is written.
    """

    if not workspace_slug or not workspace_slug.strip():
        raise BadRequest("Workspace not specified in the URL")

    try:
        workspace = await backend.select_one(
            Query("workspaces").select("id", "slug", "status_assinatura").eq("slug", workspace_slug),
            access_token=principal.access_token,
        )
        if workspace is None:
            raise NotFound("Workspace not found")

        membership = await backend.select_one(
            Query("workspace_members")
            .select("role", "ativo")
            .eq("workspace_id", workspace["id"])
            .eq("user_id", principal.id),
            access_token=principal.access_token,
        )
    except BackendError as exc:
        logger.error("Failed to resolve workspace %r: %s", workspace_slug, exc.message)
        raise InternalError("Failed to resolve workspace") from exc

    if membership is None:
        raise Forbidden("You have no access to this workspace")
    if not membership.get("ativo"):
        raise Forbidden("Your membership in this workspace is inactive")

    status_value = workspace.get("status_assinatura")
    if status_value in BLOCKED_STATUSES:
        raise Forbidden(f"Workspace subscription is {status_value}")
    if status_value not in _KNOWN_STATUSES:
        logger.error("Workspace %r has unknown subscription status %r", workspace_slug, status_value)
        raise InternalError("Failed to resolve workspace")

    return WorkspaceContext(
        principal=principal,
        workspace_id=workspace["id"],
        workspace_slug=workspace["slug"],
        role=membership["role"],
        subscription_status=status_value,
    )


async def get_workspace_context(
    workspace_slug: str = Path(..., min_length=3, max_length=50, pattern=SLUG_PATTERN),
    principal: Principal = Depends(get_current_principal),
    backend: BackendClient = Depends(get_backend),
) -> WorkspaceContext:
    """FastAPI dependency establishing the workspace scope for ``/{workspace_slug}/...`` routes."""

    return await resolve_workspace_context(backend, principal, workspace_slug)


def require_roles(*roles: UserRole):
    """Build a dependency that resolves the workspace scope and applies the role gate."""

    async def dependency(context: WorkspaceContext = Depends(get_workspace_context)) -> WorkspaceContext:
        ensure_role(context, roles)
        return context

    return dependency
