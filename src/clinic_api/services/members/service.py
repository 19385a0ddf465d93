from __future__ import annotations

import logging
from typing import Optional

from src.clinic_api.domain.models.member import MemberView
from src.clinic_api.domain.models.pagination import Page, PageRequest
from src.clinic_api.domain.models.user import UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.errors import BadRequest, Conflict, Forbidden, InternalError, NotFound
from src.clinic_api.infra.backend import procedures
from src.clinic_api.infra.backend.client import BackendClient, BackendError, Embed, Filter, Query
from src.clinic_api.services.error_mapping import NO_PERMISSION, ErrorRule, raise_backend_error

logger = logging.getLogger("backend")

MEMBER_COLUMNS = ("id", "workspace_id", "user_id", "role", "data_entrada", "ativo", "convidado_por")
USER_EMBED = Embed(
    "users",
    ("id", "nome", "sobrenome", "email", "avatar_url", "especialidade", "crm"),
    local_key="user_id",
    foreign_key="id",
    hint="workspace_members_user_id_fkey",
)

_SINGLE_ADMIN = ErrorRule(("already has an admin", "já possui um admin", "ja possui um admin"), Conflict, "Workspace already has an ADMIN")
_INVALID_ROLE = ErrorRule(("invalid role", "role inválid", "role invalid"), BadRequest, "Invalid role")

_INVITE_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to invite members"),
    ErrorRule(("user not found", "usuário não encontrado", "usuario nao encontrado"), NotFound, "User not found with this email"),
    ErrorRule(("already a member", "já é membro", "ja e membro"), Conflict, "User is already a member of this workspace"),
    _INVALID_ROLE,
    _SINGLE_ADMIN,
)

_ROLE_RULES = (
    ErrorRule(NO_PERMISSION, Forbidden, "No permission to change member roles"),
    ErrorRule(("member not found", "membro não encontrado", "membro nao encontrado"), NotFound, "Member not found"),
    _INVALID_ROLE,
    _SINGLE_ADMIN,
)


class MemberService:
    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    def _members(self, context: WorkspaceContext) -> Query:
        return (
            Query("workspace_members")
            .select(*MEMBER_COLUMNS)
            .embed(USER_EMBED)
            .eq("workspace_id", context.workspace_id)
        )

    async def invite(self, context: WorkspaceContext, *, email: str, role: UserRole) -> MemberView:
        try:
            row = await self._backend.rpc(
                procedures.INVITE_MEMBER,
                {"p_workspace_id": context.workspace_id, "p_email": email, "p_role": role.value},
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _INVITE_RULES, fallback="Failed to invite member")
        return await self.get(context, row["id"])

    async def list(self, context: WorkspaceContext, page: PageRequest) -> Page[MemberView]:
        query = self._members(context).order_by("data_entrada", descending=True).paginate(page.page, page.limit)
        try:
            result = await self._backend.select(query.with_count(), access_token=context.access_token)
        except BackendError as exc:
            logger.error("Failed to list members of %s: %s", context.workspace_id, exc.message)
            raise InternalError("Failed to fetch workspace members") from exc

        return Page[MemberView](
            items=[MemberView.from_row(row) for row in result.rows],
            total=result.count or 0,
            page=page.page,
            limit=page.limit,
        )

    async def _find(self, context: WorkspaceContext, member_id: str) -> Optional[dict]:
        try:
            return await self._backend.select_one(
                self._members(context).eq("id", member_id),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load member %s: %s", member_id, exc.message)
            raise InternalError("Failed to fetch member") from exc

    async def get(self, context: WorkspaceContext, member_id: str) -> MemberView:
        row = await self._find(context, member_id)
        if row is None:
            raise NotFound("Member not found")
        return MemberView.from_row(row)

    async def update_role(self, context: WorkspaceContext, member_id: str, role: UserRole) -> MemberView:
        try:
            await self._backend.rpc(
                procedures.UPDATE_MEMBER_ROLE,
                {"p_workspace_id": context.workspace_id, "p_member_id": member_id, "p_role": role.value},
                access_token=context.access_token,
            )
        except BackendError as exc:
            raise_backend_error(exc, _ROLE_RULES, fallback="Failed to update member role")
        return await self.get(context, member_id)

    async def remove(self, context: WorkspaceContext, member_id: str) -> None:
        """Remove a membership.

        The ADMIN membership can never be removed this way, and nobody can
        remove their own membership.
        """

        row = await self._find(context, member_id)
        if row is None:
            raise NotFound("Member not found")
        if row.get("role") == UserRole.ADMIN.value:
            raise Conflict("Cannot remove the workspace ADMIN")
        # Only an ADMIN reaches this through the API, and the ADMIN row is
        # rejected above. Kept for callers that use the service directly.
        if row.get("user_id") == context.user_id:
            raise Conflict("You cannot remove yourself from the workspace")

        try:
            await self._backend.delete(
                "workspace_members",
                [Filter("id", "eq", member_id), Filter("workspace_id", "eq", context.workspace_id)],
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to remove member %s: %s", member_id, exc.message)
            raise InternalError("Failed to remove member") from exc
