from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.clinic_api.api.error_handlers import register_error_handlers
from src.clinic_api.api.v1.routes_auth import router as auth_router
from src.clinic_api.api.v1.routes_chat import router as chat_router
from src.clinic_api.api.v1.routes_consultations import router as consultations_router
from src.clinic_api.api.v1.routes_members import router as members_router
from src.clinic_api.api.v1.routes_patients import router as patients_router
from src.clinic_api.api.v1.routes_system import router as system_router
from src.clinic_api.api.v1.routes_workspaces import router as workspaces_router
from src.clinic_api.config import Settings, settings as default_settings
from src.clinic_api.infra.backend.bootstrap import build_backend
from src.clinic_api.infra.backend.client import BackendClient


def create_app(settings: Optional[Settings] = None, backend: Optional[BackendClient] = None) -> FastAPI:
    """Build the API.

    The backend client is created here (or injected by tests) and stored on
    ``app.state``; route dependencies read it from there. It is closed when
    the application shuts down.
    """

    settings = settings or default_settings
    backend = backend or build_backend(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await backend.aclose()

    app = FastAPI(title="Clinic Management API", lifespan=lifespan)
    app.state.settings = settings
    app.state.backend = backend

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        """Basic liveness probe for the API root."""
        return {"status": "ok"}

    prefix = settings.api_prefix
    app.include_router(system_router, prefix=prefix)
    app.include_router(auth_router, prefix=prefix)
    app.include_router(workspaces_router, prefix=prefix)
    # Workspace-scoped routers match "/{workspace_slug}/..." so they go last.
    app.include_router(members_router, prefix=prefix)
    app.include_router(patients_router, prefix=prefix)
    app.include_router(consultations_router, prefix=prefix)
    app.include_router(chat_router, prefix=prefix)

    return app


app = create_app()
