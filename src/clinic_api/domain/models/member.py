from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from src.clinic_api.domain.models.user import UserRole


class Member(BaseModel):
    """Row of ``workspace_members``: grants a user a role inside a workspace."""

    model_config = ConfigDict(extra="allow")

    id: str
    workspace_id: str
    user_id: str
    role: UserRole
    convidado_por: Optional[str] = None
    data_entrada: Optional[datetime] = None
    ativo: bool = True


class MemberView(BaseModel):
    """Membership flattened with the member's public profile fields."""

    id: str
    user_id: Optional[str] = None
    nome: Optional[str] = None
    sobrenome: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    especialidade: Optional[str] = None
    crm: Optional[str] = None
    role: UserRole
    data_entrada: Optional[datetime] = None
    ativo: bool = True
    convidado_por: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MemberView":
        user = row.get("users") or {}
        return cls(
            id=row["id"],
            user_id=user.get("id"),
            nome=user.get("nome"),
            sobrenome=user.get("sobrenome"),
            email=user.get("email"),
            avatar_url=user.get("avatar_url"),
            especialidade=user.get("especialidade"),
            crm=user.get("crm"),
            role=row["role"],
            data_entrada=row.get("data_entrada"),
            ativo=row.get("ativo", True),
            convidado_por=row.get("convidado_por"),
        )
