"""In-memory implementations of the backend's stored procedures.

Each procedure receives the backend, the caller's user id (``None`` for an
anonymous call) and the already-normalised parameters, and either returns the
procedure's JSON result or raises :class:`BackendError` with the same error
wording the services classify.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Optional

from src.clinic_api.infra.backend import procedures
from src.clinic_api.infra.backend.client import BackendError, Filter

if TYPE_CHECKING:
    from src.clinic_api.infra.backend.inmemory import InMemoryBackend


Params = Dict[str, Any]

ROLES = frozenset({"ADMIN", "PROFESSIONAL", "STAFF"})
CLINICAL_ROLES = frozenset({"ADMIN", "PROFESSIONAL"})
CONSULTATION_STATUSES = frozenset({"in_progress", "completed", "cancelled"})
MESSAGE_TYPES = frozenset({"text", "audio", "system"})
PATIENT_FIELDS = ("nome", "data_nascimento", "cpf", "telefone", "email", "endereco", "observacoes")


def _fail(message: str, *, code: str = "P0001", status: int = 400) -> None:
    raise BackendError(message, code=code, status=status)


def _no_permission(action: str) -> None:
    _fail(f"No permission to {action}", code="42501", status=403)


def _require_role(
    backend: "InMemoryBackend",
    caller_id: Optional[str],
    workspace_id: Any,
    roles: Iterable[str],
    action: str,
) -> Dict[str, Any]:
    if caller_id is None:
        _no_permission(action)
    member = backend.find("workspace_members", workspace_id=workspace_id, user_id=caller_id)
    if member is None or not member.get("ativo") or member.get("role") not in roles:
        _no_permission(action)
    return member  # type: ignore[return-value]


def _has_other_admin(backend: "InMemoryBackend", workspace_id: Any, exclude_id: Optional[str] = None) -> bool:
    return any(
        m.get("role") == "ADMIN" and m.get("id") != exclude_id
        for m in backend.find_all("workspace_members", workspace_id=workspace_id)
    )


def _minutes_between(start: Optional[str], end: Optional[str]) -> Optional[int]:
    if not start or not end:
        return None
    try:
        delta = datetime.fromisoformat(end) - datetime.fromisoformat(start)
    except (TypeError, ValueError):
        return None
    return max(int(delta.total_seconds() // 60), 0)


# Users


def update_user_profile(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    user = backend.find("users", id=params.get("p_user_id"))
    if user is None:
        _fail("User not found", code="P0002", status=404)
    if caller_id is not None and caller_id != user["id"]:
        _no_permission("update this profile")
    changes = {
        column: params[f"p_{column}"]
        for column in ("nome", "sobrenome")
        if params.get(f"p_{column}") is not None
    }
    return backend.update_rows("users", changes, [Filter("id", "eq", user["id"])])[0]


def complete_onboarding(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    if caller_id is None:
        _no_permission("complete onboarding")
    user = backend.find("users", id=caller_id)
    if user is not None and user.get("onboarding"):
        _fail("Onboarding already completed")

    slug = params.get("p_workspace_slug")
    if backend.find("workspaces", slug=slug) is not None:
        _fail("Workspace slug already in use", code="23505")

    workspace = backend.insert_row(
        "workspaces",
        {"slug": slug, "nome": params.get("p_workspace_nome"), "owner_id": caller_id},
    )
    backend.insert_row(
        "workspace_members",
        {"workspace_id": workspace["id"], "user_id": caller_id, "role": "ADMIN"},
    )
    backend.update_rows("users", {"onboarding": True}, [Filter("id", "eq", caller_id)])
    return {
        "workspace_id": workspace["id"],
        "workspace_slug": workspace["slug"],
        "workspace_nome": workspace["nome"],
        "user_onboarding": True,
    }


# Members


def invite_member(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    workspace_id = params.get("p_workspace_id")
    _require_role(backend, caller_id, workspace_id, {"ADMIN"}, "invite members")

    role = params.get("p_role")
    if role not in ROLES:
        _fail("Invalid role", code="22023")

    email = (params.get("p_email") or "").strip().lower()
    user = backend.find("users", email=email)
    if user is None:
        _fail("User not found with this email", code="P0002", status=404)
    if backend.find("workspace_members", workspace_id=workspace_id, user_id=user["id"]) is not None:
        _fail("User is already a member of this workspace", code="23505")
    if role == "ADMIN" and _has_other_admin(backend, workspace_id):
        _fail("Workspace already has an ADMIN", code="23505")

    return backend.insert_row(
        "workspace_members",
        {
            "workspace_id": workspace_id,
            "user_id": user["id"],
            "role": role,
            "convidado_por": caller_id,
        },
    )


def update_member_role(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    workspace_id = params.get("p_workspace_id")
    _require_role(backend, caller_id, workspace_id, {"ADMIN"}, "change member roles")

    role = params.get("p_role")
    if role not in ROLES:
        _fail("Invalid role", code="22023")

    member = backend.find("workspace_members", id=params.get("p_member_id"), workspace_id=workspace_id)
    if member is None:
        _fail("Member not found", code="P0002", status=404)

    if role == "ADMIN" and _has_other_admin(backend, workspace_id, exclude_id=member["id"]):
        _fail("Workspace already has an ADMIN", code="23505")
    if member.get("role") == "ADMIN" and role != "ADMIN":
        workspace = backend.find("workspaces", id=workspace_id)
        if workspace is None or workspace.get("owner_id") != caller_id:
            _no_permission("reassign the workspace ADMIN")

    return backend.update_rows("workspace_members", {"role": role}, [Filter("id", "eq", member["id"])])[0]


# Patients


def _cpf_taken(backend: "InMemoryBackend", workspace_id: Any, cpf: Any, exclude_id: Optional[str] = None) -> bool:
    if not cpf:
        return False
    return any(p.get("id") != exclude_id for p in backend.find_all("patients", workspace_id=workspace_id, cpf=cpf))


def create_patient(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    workspace_id = params.get("p_workspace_id")
    _require_role(backend, caller_id, workspace_id, CLINICAL_ROLES, "create patients")
    if _cpf_taken(backend, workspace_id, params.get("p_cpf")):
        _fail("Patient with this CPF already exists", code="23505")

    values = {field: params.get(f"p_{field}") for field in PATIENT_FIELDS}
    values.update({"workspace_id": workspace_id, "created_by": caller_id})
    return backend.insert_row("patients", values)


def update_patient(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    patient = backend.find("patients", id=params.get("p_patient_id"))
    if patient is None:
        _fail("Patient not found", code="P0002", status=404)
    _require_role(backend, caller_id, patient["workspace_id"], CLINICAL_ROLES, "update patients")

    # Null parameters keep the stored value.
    changes = {
        field: params[f"p_{field}"]
        for field in PATIENT_FIELDS
        if params.get(f"p_{field}") is not None
    }
    if _cpf_taken(backend, patient["workspace_id"], changes.get("cpf"), exclude_id=patient["id"]):
        _fail("Patient with this CPF already exists", code="23505")
    return backend.update_rows("patients", changes, [Filter("id", "eq", patient["id"])])[0]


def delete_patient(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    patient = backend.find("patients", id=params.get("p_patient_id"))
    if patient is None:
        _fail("Patient not found", code="P0002", status=404)
    _require_role(backend, caller_id, patient["workspace_id"], CLINICAL_ROLES, "delete patients")
    if backend.find("consultations", paciente_id=patient["id"]) is not None:
        _fail("Patient has consultations and cannot be deleted")

    backend.delete_rows("patients", [Filter("id", "eq", patient["id"])])
    return {"id": patient["id"], "deleted": True}


# Consultations


def _owned_consultation(
    backend: "InMemoryBackend",
    caller_id: Optional[str],
    consultation_id: Any,
    action: str,
) -> Dict[str, Any]:
    consultation = backend.find("consultations", id=consultation_id)
    if consultation is None:
        _fail("Consultation not found", code="P0002", status=404)
    member = _require_role(backend, caller_id, consultation["workspace_id"], CLINICAL_ROLES, action)
    if member["role"] != "ADMIN" and consultation.get("profissional_id") != caller_id:
        _no_permission(action)
    return consultation  # type: ignore[return-value]


def create_consultation(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    workspace_id = params.get("p_workspace_id")
    _require_role(backend, caller_id, workspace_id, CLINICAL_ROLES, "create consultations")
    patient = backend.find("patients", id=params.get("p_paciente_id"), workspace_id=workspace_id)
    if patient is None:
        _fail("Patient not found", code="P0002", status=404)

    return backend.insert_row(
        "consultations",
        {
            "workspace_id": workspace_id,
            "paciente_id": patient["id"],
            "profissional_id": caller_id,
            "queixa_principal": params.get("p_queixa_principal"),
        },
    )


def update_consultation(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    consultation = _owned_consultation(backend, caller_id, params.get("p_consultation_id"), "update consultations")

    status = params.get("p_status")
    if status is not None and status not in CONSULTATION_STATUSES:
        _fail("Invalid status", code="22023")

    changes: Dict[str, Any] = {}
    if params.get("p_queixa_principal") is not None:
        changes["queixa_principal"] = params["p_queixa_principal"]
    if status is not None:
        changes["status"] = status
    finished_at = params.get("p_concluida_em")
    if status == "completed" and finished_at is None and not consultation.get("concluida_em"):
        finished_at = backend.now()
    if finished_at is not None:
        changes["concluida_em"] = finished_at
        changes["duracao_minutos"] = _minutes_between(consultation.get("iniciada_em"), finished_at)

    return backend.update_rows("consultations", changes, [Filter("id", "eq", consultation["id"])])[0]


def delete_consultation(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    consultation = _owned_consultation(backend, caller_id, params.get("p_consultation_id"), "delete consultations")
    backend.delete_rows("consultations", [Filter("id", "eq", consultation["id"])])
    return {"id": consultation["id"], "deleted": True}


# Chat


def create_chat_message(backend: "InMemoryBackend", caller_id: Optional[str], params: Params) -> Dict[str, Any]:
    consultation = backend.find("consultations", id=params.get("p_consulta_id"))
    if consultation is None:
        _fail("Consultation not found", code="P0002", status=404)
    _require_role(backend, caller_id, consultation["workspace_id"], CLINICAL_ROLES, "send messages")

    message_type = params.get("p_tipo_mensagem") or "text"
    if message_type not in MESSAGE_TYPES:
        _fail("Invalid message type", code="22023")

    return backend.insert_row(
        "chat_messages",
        {
            "consulta_id": consultation["id"],
            "user_id": caller_id,
            "tipo_mensagem": message_type,
            "conteudo": params.get("p_conteudo"),
            "audio_url": params.get("p_audio_url"),
        },
    )


PROCEDURES: Dict[str, Callable[["InMemoryBackend", Optional[str], Params], Any]] = {
    procedures.UPDATE_USER_PROFILE: update_user_profile,
    procedures.COMPLETE_ONBOARDING: complete_onboarding,
    procedures.INVITE_MEMBER: invite_member,
    procedures.UPDATE_MEMBER_ROLE: update_member_role,
    procedures.CREATE_PATIENT: create_patient,
    procedures.UPDATE_PATIENT: update_patient,
    procedures.DELETE_PATIENT: delete_patient,
    procedures.CREATE_CONSULTATION: create_consultation,
    procedures.UPDATE_CONSULTATION: update_consultation,
    procedures.DELETE_CONSULTATION: delete_consultation,
    procedures.CREATE_CHAT_MESSAGE: create_chat_message,
}
