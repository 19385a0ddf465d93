from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    PROFESSIONAL = "PROFESSIONAL"
    STAFF = "STAFF"


class Principal(BaseModel):
    """Authenticated caller resolved from a bearer token.

    The access token is kept so that every backend call made on behalf of the
    caller is evaluated by the backend's row-level policies as that caller.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    access_token: str


class UserProfile(BaseModel):
    """Row of the ``users`` table, mirroring the identity provider's users."""

    model_config = ConfigDict(extra="allow")

    id: str
    nome: Optional[str] = None
    sobrenome: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    telefone: Optional[str] = None
    especialidade: Optional[str] = None
    crm: Optional[str] = None
    ativo: bool = True
    onboarding: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
