from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from src.clinic_api.domain.models.user import Principal, UserRole


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


# Workspaces in these states reject every tenant-scoped operation.
BLOCKED_STATUSES = frozenset({SubscriptionStatus.SUSPENDED.value, SubscriptionStatus.CANCELLED.value})


class Workspace(BaseModel):
    """A clinic account; every patient, consultation and message is scoped to one."""

    model_config = ConfigDict(extra="allow")

    id: str
    slug: str
    nome: str
    owner_id: Optional[str] = None
    status_assinatura: SubscriptionStatus = SubscriptionStatus.TRIAL
    plano_assinatura: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WorkspaceSummary(BaseModel):
    """Workspace as listed for a user, together with the user's role in it."""

    id: str
    slug: str
    nome: str
    role: UserRole
    status_assinatura: SubscriptionStatus


class WorkspaceContext(BaseModel):
    """Tenant scope resolved for one request.

    Produced once by the tenant resolver and passed, unchanged, to the role
    gate and the resource services.
    """

    model_config = ConfigDict(frozen=True)

    principal: Principal
    workspace_id: str
    workspace_slug: str
    role: UserRole
    subscription_status: SubscriptionStatus

    @property
    def user_id(self) -> str:
        return self.principal.id

    @property
    def access_token(self) -> str:
        return self.principal.access_token
