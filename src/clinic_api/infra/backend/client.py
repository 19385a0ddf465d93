from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict


class BackendError(Exception):
    """Failure reported by the managed backend (table API, procedure or auth).

    ``message`` is the backend's own wording; services classify it into typed
    HTTP failures and never forward unmatched messages to clients.
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.status = status


class BackendAuthError(BackendError):
    """Identity provider rejected the credentials or token."""


# Query description


FILTER_OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "ilike", "is"})


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class Embed:
    """Related rows fetched together with each selected row.

    For a to-one relation (``many=False``) the related row is the one whose
    ``foreign_key`` equals the parent's ``local_key`` (e.g. ``users.id`` ==
    ``workspace_members.user_id``). For a to-many relation every such row is
    returned as a list. ``hint`` names the foreign-key constraint when the
    table API needs it to disambiguate.
    """

    table: str
    columns: Tuple[str, ...]
    local_key: str
    foreign_key: str
    many: bool = False
    alias: Optional[str] = None
    hint: Optional[str] = None

    @property
    def name(self) -> str:
        return self.alias or self.table


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class Query:
    """Immutable description of a read against one table.

    Builder methods return new instances so a base query can be shared and
    refined per request.
    """

    table: str
    columns: Tuple[str, ...] = ("*",)
    filters: Tuple[Filter, ...] = ()
    any_of: Tuple[Filter, ...] = ()
    embeds: Tuple[Embed, ...] = ()
    order: Tuple[Order, ...] = ()
    offset: Optional[int] = None
    limit: Optional[int] = None
    count: bool = False

    def select(self, *columns: str) -> "Query":
        return replace(self, columns=tuple(columns) or ("*",))

    def where(self, column: str, op: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + (Filter(column, op, value),))

    def eq(self, column: str, value: Any) -> "Query":
        return self.where(column, "eq", value)

    def neq(self, column: str, value: Any) -> "Query":
        return self.where(column, "neq", value)

    def gte(self, column: str, value: Any) -> "Query":
        return self.where(column, "gte", value)

    def lt(self, column: str, value: Any) -> "Query":
        return self.where(column, "lt", value)

    def ilike(self, column: str, pattern: str) -> "Query":
        return self.where(column, "ilike", pattern)

    def any_ilike(self, columns: Sequence[str], term: str) -> "Query":
        """Match rows where any of ``columns`` contains ``term`` (case-insensitive)."""

        pattern = f"%{term}%"
        return replace(self, any_of=tuple(Filter(c, "ilike", pattern) for c in columns))

    def embed(self, embed: Embed) -> "Query":
        return replace(self, embeds=self.embeds + (embed,))

    def order_by(self, column: str, *, descending: bool = False) -> "Query":
        return replace(self, order=self.order + (Order(column, descending),))

    def paginate(self, page: int, limit: int) -> "Query":
        return replace(self, offset=(page - 1) * limit, limit=limit)

    def limit_to(self, limit: int) -> "Query":
        return replace(self, limit=limit)

    def with_count(self) -> "Query":
        return replace(self, count=True)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None


# Identity provider


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    email: Optional[str] = None


class AuthSession(BaseModel):
    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class AuthResult(BaseModel):
    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None


class AuthProvider(ABC):
    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthResult:
        raise NotImplementedError

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        raise NotImplementedError

    @abstractmethod
    async def sign_out(self, access_token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        """Verify ``access_token`` and return its user; raise BackendAuthError when rejected."""
        raise NotImplementedError


class BackendClient(ABC):
    """Client for the managed backend.

    Reads go through :meth:`select`; writes that must preserve cross-row
    invariants go through :meth:`rpc`. Every call accepts the caller's access
    token so that the backend evaluates its row-level policies as that caller.
    """

    auth: AuthProvider

    @abstractmethod
    async def select(self, query: Query, *, access_token: Optional[str] = None) -> QueryResult:
        raise NotImplementedError

    @abstractmethod
    async def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Sequence[Filter],
        *,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def delete(
        self,
        table: str,
        filters: Sequence[Filter],
        *,
        access_token: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    @abstractmethod
    async def rpc(
        self,
        name: str,
        params: Mapping[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Any:
        raise NotImplementedError

    async def select_one(self, query: Query, *, access_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
        result = await self.select(query.limit_to(1), access_token=access_token)
        return result.rows[0] if result.rows else None

    async def count(self, query: Query, *, access_token: Optional[str] = None) -> int:
        result = await self.select(query.select("id").limit_to(0).with_count(), access_token=access_token)
        return result.count or 0

    async def aclose(self) -> None:
        return None
