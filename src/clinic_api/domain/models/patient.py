from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Patient(BaseModel):
    """Registration (non-clinical) data for a patient of one workspace.

    ``cpf`` is the national id; the backend keeps it unique per workspace.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    workspace_id: str
    nome: str
    data_nascimento: Optional[date] = None
    cpf: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    endereco: Optional[str] = None
    observacoes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PatientMatch(BaseModel):
    """Compact patient shape returned by the autocomplete search."""

    id: str
    nome: str
    cpf: Optional[str] = None
    telefone: Optional[str] = None
