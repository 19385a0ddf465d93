from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Awaitable, Callable, Iterable, Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.clinic_api.api.dependencies import get_backend
from src.clinic_api.domain.models.user import Principal, UserRole
from src.clinic_api.domain.models.workspace import WorkspaceContext
from src.clinic_api.errors import BadRequest, Forbidden, InternalError, NotFound, Unauthenticated
from src.clinic_api.infra.backend.client import BackendAuthError, BackendClient, BackendError, Query

logger = logging.getLogger("auth")

# Bearer token is expected in the Authorization header. auto_error is off so
# that a missing or non-bearer header yields our own 401 envelope.
_bearer_scheme = HTTPBearer(auto_error=False)

# Context variable storing the authenticated principal id for the in-flight
# request, used as the subject of audit events.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any.

    Set by :func:`get_current_principal`; ``None`` outside authenticated
    requests.
    """

    return _current_subject.get()


async def get_optional_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer_scheme),
) -> Optional[str]:
    """Bearer token when one is supplied; never fails."""

    return credentials.credentials if credentials else None


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer_scheme),
    backend: BackendClient = Depends(get_backend),
) -> Principal:
    """FastAPI dependency verifying the bearer token with the identity provider.

    - Missing header or a scheme other than ``Bearer``: 401 without calling
      the provider.
    - Provider rejection or no user behind the token: 401.
    """

    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Authentication token not provided")

    token = credentials.credentials
    try:
        user = await backend.auth.get_user(token)
    except BackendAuthError as exc:
        logger.info("Bearer token rejected by identity provider: %s", exc.message)
        raise Unauthenticated("Invalid or expired token") from exc
    except BackendError as exc:
        logger.error("Identity provider unavailable: %s", exc.message)
        raise InternalError("Authentication service unavailable") from exc

    if user is None:
        raise Unauthenticated("Invalid or expired token")

    principal = Principal(id=user.id, email=user.email, access_token=token)
    _current_subject.set(principal.id)
    return principal


def ensure_role(context: WorkspaceContext, allowed: Iterable[UserRole]) -> None:
    """Raise 403 unless the caller's workspace role is in ``allowed``."""

    allowed = tuple(allowed)
    if context.role is None or context.role not in allowed:
        raise Forbidden(f"Access denied. Allowed roles: {', '.join(role.value for role in allowed)}")


async def ensure_owner_or_admin(
    context: WorkspaceContext,
    get_owner_id: Callable[[], Awaitable[Optional[str]]],
) -> None:
    """Raise 403 unless the caller is ADMIN or owns the resource.

    ADMIN passes without resolving the owner. ``get_owner_id`` may itself
    raise (e.g. 404 when the resource is not in the workspace).
    """

    if context.role == UserRole.ADMIN:
        return

    owner_id = await get_owner_id()
    if owner_id is None or owner_id != context.user_id:
        raise Forbidden("Only the owner or an ADMIN can modify this resource")


async def ensure_onboarding_pending(
    principal: Principal = Depends(get_current_principal),
    backend: BackendClient = Depends(get_backend),
) -> Principal:
    """Dependency rejecting callers that already completed onboarding."""

    try:
        user = await backend.select_one(
            Query("users").select("onboarding").eq("id", principal.id),
            access_token=principal.access_token,
        )
    except BackendError as exc:
        logger.error("Failed to read onboarding status: %s", exc.message)
        raise InternalError("Failed to check onboarding status") from exc

    if user is None:
        raise NotFound("User not found")
    if user.get("onboarding"):
        raise BadRequest("Onboarding already completed")
    return principal
