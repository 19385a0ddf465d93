from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from src.clinic_api.domain.models.user import Principal, UserRole
from src.clinic_api.domain.models.workspace import SubscriptionStatus, WorkspaceContext
from src.clinic_api.errors import BadRequest, Conflict, Forbidden, InternalError, NotFound
from src.clinic_api.infra.backend.client import BackendClient, BackendError, Filter, Query
from src.clinic_api.services.error_mapping import ALREADY_IN_USE, ErrorRule, raise_backend_error
from src.clinic_api.services.workspaces.saga import CompensatingSteps
from src.clinic_api.utils.slug import generate_slug, is_valid_slug

logger = logging.getLogger("backend")

DEFAULT_PLAN = "basic"
SLUG_IN_USE = "Workspace slug already in use"

_SLUG_RULES = (ErrorRule(ALREADY_IN_USE + ("duplicate key",), Conflict, SLUG_IN_USE),)


class WorkspaceService:
    def __init__(self, backend: BackendClient) -> None:
        self._backend = backend

    async def _slug_taken(self, slug: str, access_token: str, exclude_id: Optional[str] = None) -> bool:
        query = Query("workspaces").select("id").eq("slug", slug)
        if exclude_id is not None:
            query = query.neq("id", exclude_id)
        try:
            return await self._backend.select_one(query, access_token=access_token) is not None
        except BackendError as exc:
            logger.error("Failed to check slug %r: %s", slug, exc.message)
            raise InternalError("Failed to check workspace slug") from exc

    async def create(self, principal: Principal, *, nome: str, slug: Optional[str] = None) -> Dict[str, Any]:
        """Create a workspace owned by ``principal`` with the caller as its ADMIN.

        The workspace row and the ADMIN membership are two separate writes;
        when the membership cannot be stored the workspace is deleted again.
        """

        workspace_slug = slug or generate_slug(nome)
        if not is_valid_slug(workspace_slug):
            raise BadRequest("Could not derive a valid slug from the workspace name")

        token = principal.access_token
        if await self._slug_taken(workspace_slug, token):
            raise Conflict(SLUG_IN_USE)

        created: Dict[str, Any] = {}

        async def insert_workspace() -> Dict[str, Any]:
            row = await self._backend.insert(
                "workspaces",
                {
                    "nome": nome,
                    "slug": workspace_slug,
                    "owner_id": principal.id,
                    "status_assinatura": SubscriptionStatus.TRIAL.value,
                    "plano_assinatura": DEFAULT_PLAN,
                },
                access_token=token,
            )
            created.update(row)
            return row

        async def delete_workspace(row: Dict[str, Any]) -> None:
            await self._backend.delete("workspaces", [Filter("id", "eq", row["id"])], access_token=token)

        async def insert_admin_membership() -> Dict[str, Any]:
            return await self._backend.insert(
                "workspace_members",
                {
                    "workspace_id": created["id"],
                    "user_id": principal.id,
                    "role": UserRole.ADMIN.value,
                    "ativo": True,
                },
                access_token=token,
            )

        steps = (
            CompensatingSteps()
            .add("insert workspace", insert_workspace, delete_workspace)
            .add("insert ADMIN membership", insert_admin_membership)
        )
        try:
            await steps.run()
        except BackendError as exc:
            if not created:
                raise_backend_error(exc, _SLUG_RULES, fallback="Failed to create workspace")
            logger.error("Failed to add ADMIN membership to workspace %s: %s", created["id"], exc.message)
            raise InternalError("Failed to add the creator to the workspace") from exc

        return created

    async def _count(self, table: str, query: Query, access_token: str) -> int:
        try:
            return await self._backend.count(query, access_token=access_token)
        except BackendError as exc:
            logger.warning("Failed to count %s: %s", table, exc.message)
            return 0

    async def get_by_slug(self, principal: Principal, slug: str) -> Dict[str, Any]:
        token = principal.access_token
        try:
            workspace = await self._backend.select_one(Query("workspaces").eq("slug", slug), access_token=token)
            if workspace is None:
                raise NotFound("Workspace not found")
            membership = await self._backend.select_one(
                Query("workspace_members")
                .select("role")
                .eq("workspace_id", workspace["id"])
                .eq("user_id", principal.id),
                access_token=token,
            )
        except BackendError as exc:
            logger.error("Failed to load workspace %r: %s", slug, exc.message)
            raise InternalError("Failed to fetch workspace") from exc

        if membership is None:
            raise Forbidden("You have no access to this workspace")

        workspace_id = workspace["id"]
        members, patients, consultations = await asyncio.gather(
            self._count(
                "workspace_members",
                Query("workspace_members").eq("workspace_id", workspace_id).eq("ativo", True),
                token,
            ),
            self._count("patients", Query("patients").eq("workspace_id", workspace_id), token),
            self._count("consultations", Query("consultations").eq("workspace_id", workspace_id), token),
        )
        return {
            "workspace": workspace,
            "role": membership["role"],
            "members_count": members,
            "patients_count": patients,
            "consultations_count": consultations,
        }

    async def update(self, context: WorkspaceContext, changes: Dict[str, Any]) -> Dict[str, Any]:
        token = context.access_token
        values = {key: value for key, value in changes.items() if value is not None}

        new_slug = values.get("slug")
        if new_slug and await self._slug_taken(new_slug, token, exclude_id=context.workspace_id):
            raise Conflict(SLUG_IN_USE)

        try:
            if values:
                rows = await self._backend.update(
                    "workspaces",
                    values,
                    [Filter("id", "eq", context.workspace_id)],
                    access_token=token,
                )
            else:
                rows = (
                    await self._backend.select(
                        Query("workspaces").eq("id", context.workspace_id), access_token=token
                    )
                ).rows
        except BackendError as exc:
            raise_backend_error(exc, _SLUG_RULES, fallback="Failed to update workspace")

        if not rows:
            raise NotFound("Workspace not found")
        return rows[0]

    async def get_owner_id(self, context: WorkspaceContext) -> Optional[str]:
        try:
            row = await self._backend.select_one(
                Query("workspaces").select("owner_id").eq("id", context.workspace_id),
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to load owner of workspace %s: %s", context.workspace_id, exc.message)
            raise InternalError("Failed to fetch workspace") from exc
        if row is None:
            raise NotFound("Workspace not found")
        return row.get("owner_id")

    async def delete(self, context: WorkspaceContext) -> None:
        """Delete the workspace; only its owner may do so. Related rows cascade in the backend."""

        if await self.get_owner_id(context) != context.user_id:
            raise Forbidden("Only the workspace owner can delete it")

        try:
            await self._backend.delete(
                "workspaces",
                [Filter("id", "eq", context.workspace_id)],
                access_token=context.access_token,
            )
        except BackendError as exc:
            logger.error("Failed to delete workspace %s: %s", context.workspace_id, exc.message)
            raise InternalError("Failed to delete workspace") from exc
