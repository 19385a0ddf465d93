from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from src.clinic_api.config import Settings
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


logger = logging.getLogger("backend")

# Characters with a meaning inside PostgREST logical-operator expressions.
_RESERVED_CHARS = set(',.:()"')


@dataclass
class RestBackendConfig:
    """Connection settings for the managed backend's HTTP APIs."""

    url: str
    api_key: str
    timeout_seconds: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "RestBackendConfig":
        if not settings.backend_url or not settings.backend_anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be configured for the REST backend")
        return cls(
            url=settings.backend_url.rstrip("/"),
            api_key=settings.backend_anon_key,
            timeout_seconds=settings.backend_timeout_seconds,
        )


def _render_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _quote(value: str) -> str:
    if any(ch in _RESERVED_CHARS for ch in value) or value != value.strip():
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def _filter_expression(f: Filter, *, quoted: bool = False) -> Tuple[str, str]:
    op = f.op
    if f.value is None and op == "eq":
        op = "is"
    value = _render_value(f.value)
    if op == "ilike":
        # PostgREST accepts "*" as the URL-safe alias of the "%" wildcard.
        value = value.replace("%", "*")
    if quoted:
        value = _quote(value)
    return f.column, f"{op}.{value}"


def _render_embed(embed: Embed) -> str:
    target = embed.table
    if embed.hint:
        target = f"{target}!{embed.hint}"
    if embed.alias and embed.alias != embed.table:
        target = f"{embed.alias}:{target}"
    return f"{target}({','.join(embed.columns)})"


def render_query_params(query: Query) -> List[Tuple[str, str]]:
    """Translate a :class:`Query` into PostgREST query-string parameters."""

    select_parts = list(query.columns) + [_render_embed(e) for e in query.embeds]
    params: List[Tuple[str, str]] = [("select", ",".join(select_parts))]
    params.extend(_filter_expression(f) for f in query.filters)
    if query.any_of:
        alternatives = []
        for f in query.any_of:
            column, expression = _filter_expression(f, quoted=True)
            alternatives.append(f"{column}.{expression}")
        params.append(("or", f"({','.join(alternatives)})"))
    if query.order:
        params.append(
            ("order", ",".join(f"{o.column}.{'desc' if o.descending else 'asc'}" for o in query.order))
        )
    if query.offset:
        params.append(("offset", str(query.offset)))
    if query.limit is not None:
        params.append(("limit", str(query.limit)))
    return params


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Return the total from a ``Content-Range: 0-9/25`` header, if present."""

    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


def _error_from_response(response: httpx.Response, error_cls: type = BackendError) -> BackendError:
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or response.text
        )
        code = body.get("code") or body.get("error_code")
        details = body.get("details") or body.get("hint")
    else:
        message, code, details = response.text or f"HTTP {response.status_code}", None, None

    return error_cls(
        str(message),
        code=str(code) if code is not None else None,
        details=str(details) if details is not None else None,
        status=response.status_code,
    )


class _RestTransport:
    """Shared httpx plumbing: headers, transport errors and status checks."""

    def __init__(self, config: RestBackendConfig, client: httpx.AsyncClient) -> None:
        self._config = config
        self._client = client

    def headers(self, access_token: Optional[str] = None, **extra: str) -> Dict[str, str]:
        headers = {
            "apikey": self._config.api_key,
            "Authorization": f"Bearer {access_token or self._config.api_key}",
            "Accept": "application/json",
        }
        headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type = BackendError,
        **kwargs: Any,
    ) -> httpx.Response:
        url = f"{self._config.url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.exception("Error calling backend %s %s", method, path)
            raise BackendError(f"Backend request failed: {exc}") from exc

        if response.status_code >= 400:
            error = _error_from_response(response, error_cls)
            logger.warning(
                "Backend %s %s failed with status %s: %s",
                method,
                path,
                response.status_code,
                error.message,
            )
            raise error
        return response


class RestAuthProvider(AuthProvider):
    """Identity provider endpoints under ``/auth/v1``."""

    def __init__(self, transport: _RestTransport) -> None:
        self._transport = transport

    @staticmethod
    def _parse_result(data: Dict[str, Any]) -> AuthResult:
        if data.get("access_token"):
            user = data.get("user")
            return AuthResult(
                user=AuthUser.model_validate(user) if user else None,
                session=AuthSession.model_validate(data),
            )
        # Sign-up with e-mail confirmation enabled answers with the bare user.
        if data.get("id"):
            return AuthResult(user=AuthUser.model_validate(data), session=None)
        return AuthResult()

    async def sign_up(self, email: str, password: str) -> AuthResult:
        response = await self._transport.request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password},
            headers=self._transport.headers(),
            error_cls=BackendAuthError,
        )
        return self._parse_result(response.json())

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        response = await self._transport.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._transport.headers(),
            error_cls=BackendAuthError,
        )
        return self._parse_result(response.json())

    async def sign_out(self, access_token: str) -> None:
        await self._transport.request(
            "POST",
            "/auth/v1/logout",
            headers=self._transport.headers(access_token),
            error_cls=BackendAuthError,
        )

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        response = await self._transport.request(
            "GET",
            "/auth/v1/user",
            headers=self._transport.headers(access_token),
            error_cls=BackendAuthError,
        )
        data = response.json()
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return AuthUser.model_validate(data)


class RestBackendClient(BackendClient):
    """BackendClient over the managed backend's PostgREST and auth HTTP APIs.

    No retries are performed: every failure surfaces immediately as a
    :class:`BackendError` carrying the backend's own message.
    """

    def __init__(self, config: RestBackendConfig, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._transport = _RestTransport(config, self._http)
        self.auth = RestAuthProvider(self._transport)

    @staticmethod
    def _filter_params(filters: Sequence[Filter]) -> List[Tuple[str, str]]:
        return [_filter_expression(f) for f in filters]

    async def select(self, query: Query, *, access_token: Optional[str] = None) -> QueryResult:
        extra = {"Prefer": "count=exact"} if query.count else {}
        response = await self._transport.request(
            "GET",
            f"/rest/v1/{query.table}",
            params=render_query_params(query),
            headers=self._transport.headers(access_token, **extra),
        )
        rows = response.json() or []
        count = parse_content_range(response.headers.get("content-range")) if query.count else None
        return QueryResult(rows=rows, count=count)

    async def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        response = await self._transport.request(
            "POST",
            f"/rest/v1/{table}",
            json=dict(values),
            headers=self._transport.headers(access_token, Prefer="return=representation"),
        )
        rows = response.json() or []
        if not rows:
            raise BackendError(f"Insert into {table} returned no rows")
        return rows[0]

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Sequence[Filter],
        *,
        access_token: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        response = await self._transport.request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            json=dict(values),
            headers=self._transport.headers(access_token, Prefer="return=representation"),
        )
        return response.json() or []

    async def delete(
        self,
        table: str,
        filters: Sequence[Filter],
        *,
        access_token: Optional[str] = None,
    ) -> int:
        response = await self._transport.request(
            "DELETE",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            headers=self._transport.headers(access_token, Prefer="return=representation"),
        )
        return len(response.json() or [])

    async def rpc(
        self,
        name: str,
        params: Mapping[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Any:
        response = await self._transport.request(
            "POST",
            f"/rest/v1/rpc/{name}",
            json=dict(params),
            headers=self._transport.headers(access_token),
        )
        if not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        await self._http.aclose()
