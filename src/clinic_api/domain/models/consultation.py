from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ConsultationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Consultation(BaseModel):
    """A single visit of a patient with a professional.

    Embedded relations requested by the services (``patients``, ``users``,
    ``transcriptions``, ``analysis_results``) are kept as extra fields.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    workspace_id: str
    paciente_id: str
    profissional_id: str
    queixa_principal: Optional[str] = None
    status: ConsultationStatus = ConsultationStatus.IN_PROGRESS
    iniciada_em: Optional[datetime] = None
    concluida_em: Optional[datetime] = None
    duracao_minutos: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
