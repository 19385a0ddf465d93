from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from src.clinic_api.api.dependencies import get_member_service
from src.clinic_api.api.responses import envelope, message_only, paginated
from src.clinic_api.api.v1.fields import Email, page_params
from src.clinic_api.domain.models.pagination import PageRequest
from src.clinic_api.domain.models.user import UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.services.audit.service import audit_service
from src.clinic_api.services.members.service import MemberService
from src.clinic_api.tenancy import get_workspace_context, require_roles


router = APIRouter(prefix="/{workspace_slug}/members", tags=["members"])

admin_only = require_roles(UserRole.ADMIN)


class MemberInviteRequest(BaseModel):
    email: Email
    role: UserRole


class MemberRoleUpdateRequest(BaseModel):
    role: UserRole


@router.post("", status_code=status.HTTP_201_CREATED)
async def invite_member(
    payload: MemberInviteRequest,
    context: WorkspaceContext = Depends(admin_only),
    service: MemberService = Depends(get_member_service),
) -> dict:
    member = await service.invite(context, email=payload.email, role=payload.role)
    audit_service.log_event(
        action="invite_member",
        resource_type="workspace_member",
        resource_id=member.id,
        workspace_id=context.workspace_id,
        extra={"role": payload.role.value},
    )
    return envelope(member, "Member invited successfully")


@router.get("")
async def list_members(
    page: PageRequest = Depends(page_params),
    context: WorkspaceContext = Depends(get_workspace_context),
    service: MemberService = Depends(get_member_service),
) -> dict:
    return paginated(await service.list(context, page))


@router.get("/{member_id}")
async def get_member(
    member_id: UUID,
    context: WorkspaceContext = Depends(get_workspace_context),
    service: MemberService = Depends(get_member_service),
) -> dict:
    return envelope(await service.get(context, str(member_id)))


@router.patch("/{member_id}")
async def update_member_role(
    member_id: UUID,
    payload: MemberRoleUpdateRequest,
    context: WorkspaceContext = Depends(admin_only),
    service: MemberService = Depends(get_member_service),
) -> dict:
    member = await service.update_role(context, str(member_id), payload.role)
    audit_service.log_event(
        action="update_member_role",
        resource_type="workspace_member",
        resource_id=str(member_id),
        workspace_id=context.workspace_id,
        extra={"role": payload.role.value},
    )
    return envelope(member, "Member role updated successfully")


@router.delete("/{member_id}")
async def remove_member(
    member_id: UUID,
    context: WorkspaceContext = Depends(admin_only),
    service: MemberService = Depends(get_member_service),
) -> dict:
    await service.remove(context, str(member_id))
    audit_service.log_event(
        action="remove_member",
        resource_type="workspace_member",
        resource_id=str(member_id),
        workspace_id=context.workspace_id,
    )
    return message_only("Member removed successfully")
