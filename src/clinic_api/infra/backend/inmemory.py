from __future__ import annotations

import copy
import hashlib
import re
import secrets
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from src.clinic_api.infra.backend.client import (
    AuthProvider,
    AuthResult,
    AuthSession,
    AuthUser,
    BackendAuthError,
    BackendClient,
    BackendError,
    Embed,
    Filter,
    Query,
    QueryResult,
)
from src.clinic_api.infra.backend.inmemory_procedures import PROCEDURES


TABLES = (
    "users",
    "workspaces",
    "workspace_members",
    "patients",
    "consultations",
    "chat_messages",
    "transcriptions",
    "analysis_results",
)

# Column defaults applied on insert, mirroring the production schema.
_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "users": {"ativo": True, "onboarding": False},
    "workspaces": {"status_assinatura": "trial", "plano_assinatura": "basic"},
    "workspace_members": {"ativo": True},
    "consultations": {"status": "in_progress"},
    "chat_messages": {"tipo_mensagem": "text"},
}

# Columns stamped with the insertion time when not provided.
_TIMESTAMP_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "users": ("created_at", "updated_at"),
    "workspaces": ("created_at", "updated_at"),
    "workspace_members": ("data_entrada",),
    "patients": ("created_at", "updated_at"),
    "consultations": ("iniciada_em", "created_at", "updated_at"),
    "chat_messages": ("created_at",),
    "transcriptions": ("created_at",),
    "analysis_results": ("created_at", "updated_at"),
}

# Unique constraints: (table, columns, constraint name).
_UNIQUE: Tuple[Tuple[str, Tuple[str, ...], str], ...] = (
    ("users", ("email",), "users_email_key"),
    ("workspaces", ("slug",), "workspaces_slug_key"),
    ("workspace_members", ("workspace_id", "user_id"), "workspace_members_workspace_id_user_id_key"),
    ("patients", ("workspace_id", "cpf"), "patients_workspace_id_cpf_key"),
)

# ON DELETE CASCADE relations: parent table -> [(child table, child column)].
_CASCADES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "workspaces": (
        ("workspace_members", "workspace_id"),
        ("consultations", "workspace_id"),
        ("patients", "workspace_id"),
    ),
    "consultations": (
        ("chat_messages", "consulta_id"),
        ("transcriptions", "consulta_id"),
        ("analysis_results", "consulta_id"),
    ),
}


def _normalize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _like_to_regex(pattern: str) -> "re.Pattern[str]":
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _compare(left: Any, right: Any, op: str) -> bool:
    if left is None or right is None:
        return False
    try:
        if op == "gt":
            return left > right
        if op == "gte":
            return left >= right
        if op == "lt":
            return left < right
        return left <= right
    except TypeError:
        return False


def matches(row: Mapping[str, Any], f: Filter) -> bool:
    """Evaluate one filter against a stored row."""

    actual = row.get(f.column)
    expected = _normalize(f.value)
    if f.op == "eq":
        if expected is None:
            return actual is None
        return actual == expected
    if f.op == "neq":
        return actual is not None and actual != expected
    if f.op == "is":
        return actual is None if expected is None else actual == expected
    if f.op == "ilike":
        if actual is None:
            return False
        return _like_to_regex(str(expected)).fullmatch(str(actual)) is not None
    return _compare(actual, expected, f.op)


def _project(row: Mapping[str, Any], columns: Sequence[str]) -> Dict[str, Any]:
    if "*" in columns:
        return copy.deepcopy(dict(row))
    return {column: copy.deepcopy(row.get(column)) for column in columns}


def _sort_key(value: Any) -> Tuple[int, Any]:
    # Nulls sort last in ascending order, like the production database.
    if value is None:
        return (1, "")
    if isinstance(value, str):
        return (0, value.lower())
    return (0, value)


class InMemoryAuthProvider(AuthProvider):
    """Password and opaque-token identity provider kept in process memory."""

    def __init__(self, backend: "InMemoryBackend") -> None:
        self._backend = backend
        self._credentials: Dict[str, Tuple[str, str]] = {}
        self._tokens: Dict[str, str] = {}

    @staticmethod
    def _hash(password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    def register(self, email: str, password: str, user_id: Optional[str] = None) -> str:
        email = email.strip().lower()
        if email in self._credentials:
            raise BackendAuthError("User already registered", code="user_already_exists", status=422)
        user_id = user_id or str(uuid4())
        self._credentials[email] = (user_id, self._hash(password))
        return user_id

    def issue_token(self, user_id: str) -> str:
        token = f"token-{secrets.token_hex(16)}"
        self._tokens[token] = user_id
        return token

    def user_id_for(self, access_token: Optional[str]) -> Optional[str]:
        if not access_token:
            return None
        return self._tokens.get(access_token)

    def _session_for(self, user_id: str, email: str) -> AuthResult:
        token = self.issue_token(user_id)
        return AuthResult(
            user=AuthUser(id=user_id, email=email),
            session=AuthSession(
                access_token=token,
                refresh_token=f"refresh-{secrets.token_hex(16)}",
                expires_in=3600,
            ),
        )

    async def sign_up(self, email: str, password: str) -> AuthResult:
        user_id = self.register(email, password)
        email = email.strip().lower()
        # The production database creates the profile row from a trigger on
        # the identity provider's users table.
        self._backend.insert_row("users", {"id": user_id, "email": email})
        return self._session_for(user_id, email)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        email = email.strip().lower()
        stored = self._credentials.get(email)
        if stored is None or stored[1] != self._hash(password):
            raise BackendAuthError("Invalid login credentials", code="invalid_credentials", status=400)
        return self._session_for(stored[0], email)

    async def sign_out(self, access_token: str) -> None:
        self._tokens.pop(access_token, None)

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        user_id = self.user_id_for(access_token)
        if user_id is None:
            raise BackendAuthError("invalid JWT: unable to parse or verify signature", code="bad_jwt", status=401)
        row = self._backend.find("users", id=user_id)
        return AuthUser(id=user_id, email=row.get("email") if row else None)


class InMemoryBackend(BackendClient):
    """Complete in-process stand-in for the managed backend.

    Holds every table as a list of dict rows (timestamps and dates as ISO
    strings, exactly as the table API returns them), evaluates :class:`Query`
    objects, and implements the named stored procedures in
    ``inmemory_procedures``. Used for local development without a configured
    remote backend and as the test double.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLES}
        self.auth = InMemoryAuthProvider(self)
        self._last_timestamp: Optional[datetime] = None

        self._procedures: Dict[str, Callable[..., Any]] = dict(PROCEDURES)

    # Storage primitives

    def now(self) -> str:
        """Current UTC time, strictly increasing across calls."""

        current = datetime.now(timezone.utc)
        if self._last_timestamp is not None and current <= self._last_timestamp:
            current = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = current
        return current.isoformat()

    def _table(self, name: str) -> List[Dict[str, Any]]:
        try:
            return self.tables[name]
        except KeyError:
            raise BackendError(
                f'relation "public.{name}" does not exist',
                code="42P01",
                status=404,
            ) from None

    def _check_unique(self, table: str, row: Mapping[str, Any], ignore_id: Optional[str] = None) -> None:
        for constraint_table, columns, constraint in _UNIQUE:
            if constraint_table != table:
                continue
            values = tuple(row.get(c) for c in columns)
            if any(v is None for v in values):
                continue
            for existing in self.tables[table]:
                if existing.get("id") == ignore_id:
                    continue
                if tuple(existing.get(c) for c in columns) == values:
                    raise BackendError(
                        f'duplicate key value violates unique constraint "{constraint}"',
                        code="23505",
                        status=409,
                    )

    def insert_row(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        rows = self._table(table)
        row: Dict[str, Any] = dict(_DEFAULTS.get(table, {}))
        row.update({k: _normalize(v) for k, v in values.items()})
        row.setdefault("id", str(uuid4()))
        stamp = self.now()
        for column in _TIMESTAMP_COLUMNS.get(table, ()):
            if row.get(column) is None:
                row[column] = stamp
        self._check_unique(table, row)
        rows.append(row)
        return copy.deepcopy(row)

    def update_rows(self, table: str, values: Mapping[str, Any], filters: Iterable[Filter]) -> List[Dict[str, Any]]:
        filters = list(filters)
        changes = {k: _normalize(v) for k, v in values.items()}
        updated = []
        for row in self._table(table):
            if not all(matches(row, f) for f in filters):
                continue
            candidate = {**row, **changes}
            if "updated_at" in row:
                candidate["updated_at"] = self.now()
            self._check_unique(table, candidate, ignore_id=row.get("id"))
            row.update(candidate)
            updated.append(copy.deepcopy(row))
        return updated

    def delete_rows(self, table: str, filters: Iterable[Filter]) -> List[Dict[str, Any]]:
        filters = list(filters)
        rows = self._table(table)
        removed = [row for row in rows if all(matches(row, f) for f in filters)]
        if not removed:
            return []
        removed_ids = {id(row) for row in removed}
        self.tables[table] = [row for row in rows if id(row) not in removed_ids]
        for row in removed:
            for child_table, column in _CASCADES.get(table, ()):
                self.delete_rows(child_table, [Filter(column, "eq", row["id"])])
        return removed

    def find(self, table: str, **criteria: Any) -> Optional[Dict[str, Any]]:
        for row in self._table(table):
            if all(row.get(k) == _normalize(v) for k, v in criteria.items()):
                return row
        return None

    def find_all(self, table: str, **criteria: Any) -> List[Dict[str, Any]]:
        return [
            row
            for row in self._table(table)
            if all(row.get(k) == _normalize(v) for k, v in criteria.items())
        ]

    # BackendClient

    def _resolve_embed(self, row: Mapping[str, Any], embed: Embed) -> Any:
        key = row.get(embed.local_key)
        related = [r for r in self._table(embed.table) if key is not None and r.get(embed.foreign_key) == key]
        if embed.many:
            return [_project(r, embed.columns) for r in related]
        return _project(related[0], embed.columns) if related else None

    async def select(self, query: Query, *, access_token: Optional[str] = None) -> QueryResult:
        rows = [
            row
            for row in self._table(query.table)
            if all(matches(row, f) for f in query.filters)
            and (not query.any_of or any(matches(row, f) for f in query.any_of))
        ]
        for order in reversed(query.order):
            rows = sorted(rows, key=lambda r, col=order.column: _sort_key(r.get(col)), reverse=order.descending)

        total = len(rows)
        start = query.offset or 0
        end = None if query.limit is None else start + query.limit
        window = rows[start:end]

        result = []
        for row in window:
            item = _project(row, query.columns)
            for embed in query.embeds:
                item[embed.name] = self._resolve_embed(row, embed)
            result.append(item)
        return QueryResult(rows=result, count=total if query.count else None)

    async def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.insert_row(table, values)

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Sequence[Filter],
        *,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self.update_rows(table, values, filters)

    async def delete(
        self,
        table: str,
        filters: Sequence[Filter],
        *,
        access_token: Optional[str] = None,
    ) -> int:
        return len(self.delete_rows(table, filters))

    async def rpc(
        self,
        name: str,
        params: Mapping[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Any:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise BackendError(
                f"Could not find the function public.{name} in the schema cache",
                code="PGRST202",
                status=404,
            )
        caller_id = self.auth.user_id_for(access_token)
        result = procedure(self, caller_id, {k: _normalize(v) for k, v in params.items()})
        return copy.deepcopy(result)

    # Seed helpers

    def add_user(
        self,
        email: str,
        password: str = "Secret123",
        *,
        nome: str = "Test",
        sobrenome: str = "User",
        onboarding: bool = True,
        **profile: Any,
    ) -> Tuple[Dict[str, Any], str]:
        """Create a user with credentials and profile; return ``(row, access_token)``."""

        user_id = self.auth.register(email, password)
        row = self.insert_row(
            "users",
            {
                "id": user_id,
                "email": email.strip().lower(),
                "nome": nome,
                "sobrenome": sobrenome,
                "onboarding": onboarding,
                **profile,
            },
        )
        return row, self.auth.issue_token(user_id)

    def add_workspace(self, nome: str, slug: str, owner_id: str, **values: Any) -> Dict[str, Any]:
        return self.insert_row("workspaces", {"nome": nome, "slug": slug, "owner_id": owner_id, **values})

    def add_member(self, workspace_id: str, user_id: str, role: Any = "STAFF", **values: Any) -> Dict[str, Any]:
        return self.insert_row(
            "workspace_members",
            {"workspace_id": workspace_id, "user_id": user_id, "role": role, **values},
        )

    def add_patient(self, workspace_id: str, nome: str, **values: Any) -> Dict[str, Any]:
        return self.insert_row("patients", {"workspace_id": workspace_id, "nome": nome, **values})

    def add_consultation(
        self,
        workspace_id: str,
        paciente_id: str,
        profissional_id: str,
        **values: Any,
    ) -> Dict[str, Any]:
        return self.insert_row(
            "consultations",
            {
                "workspace_id": workspace_id,
                "paciente_id": paciente_id,
                "profissional_id": profissional_id,
                **values,
            },
        )
