from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, status
from pydantic import BaseModel

from src.clinic_api.api.dependencies import get_workspace_service
from src.clinic_api.api.responses import envelope, message_only
from src.clinic_api.api.v1.fields import PlanName, Slug, WorkspaceName
from src.clinic_api.domain.models.user import Principal, UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.security import get_current_principal
from src.clinic_api.services.audit.service import audit_service
from src.clinic_api.services.workspaces.service import WorkspaceService
from src.clinic_api.tenancy import require_roles
from src.clinic_api.utils.slug import SLUG_PATTERN


router = APIRouter(prefix="/workspaces", tags=["workspaces"])


class WorkspaceCreateRequest(BaseModel):
    nome: WorkspaceName
    slug: Optional[Slug] = None


class WorkspaceUpdateRequest(BaseModel):
    nome: Optional[WorkspaceName] = None
    slug: Optional[Slug] = None
    plano_assinatura: Optional[PlanName] = None


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_workspace(
    payload: WorkspaceCreateRequest,
    principal: Principal = Depends(get_current_principal),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    workspace = await service.create(principal, nome=payload.nome, slug=payload.slug)
    audit_service.log_event(
        action="create_workspace",
        resource_type="workspace",
        resource_id=workspace["id"],
        workspace_id=workspace["id"],
    )
    return envelope(workspace, "Workspace created successfully")


@router.get("/{workspace_slug}")
async def get_workspace(
    workspace_slug: str = Path(..., min_length=3, max_length=50, pattern=SLUG_PATTERN),
    principal: Principal = Depends(get_current_principal),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    return envelope(await service.get_by_slug(principal, workspace_slug))


@router.patch("/{workspace_slug}")
async def update_workspace(
    payload: WorkspaceUpdateRequest,
    context: WorkspaceContext = Depends(require_roles(UserRole.ADMIN)),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    workspace = await service.update(context, payload.model_dump(exclude_none=True))
    audit_service.log_event(
        action="update_workspace",
        resource_type="workspace",
        resource_id=context.workspace_id,
        workspace_id=context.workspace_id,
        extra={"fields": sorted(payload.model_dump(exclude_none=True))},
    )
    return envelope(workspace, "Workspace updated successfully")


@router.delete("/{workspace_slug}")
async def delete_workspace(
    context: WorkspaceContext = Depends(require_roles(UserRole.ADMIN)),
    service: WorkspaceService = Depends(get_workspace_service),
) -> dict:
    await service.delete(context)
    audit_service.log_event(
        action="delete_workspace",
        resource_type="workspace",
        resource_id=context.workspace_id,
        workspace_id=context.workspace_id,
    )
    return message_only("Workspace deleted successfully")
