from __future__ import annotations

import logging

from src.clinic_api.config import Settings
from src.clinic_api.infra.backend.client import BackendClient
from src.clinic_api.infra.backend.inmemory import InMemoryBackend
from src.clinic_api.infra.backend.rest import RestBackendClient, RestBackendConfig


logger = logging.getLogger("backend")


def build_backend(settings: Settings) -> BackendClient:
    """Create the backend client for one application instance.

    When the managed backend's URL and key are configured the REST client is
    used. Otherwise the in-memory backend keeps the API usable for local
    development; its data lives only as long as the process.
    """

    if settings.use_remote_backend:
        config = RestBackendConfig.from_settings(settings)
        logger.info("Using remote backend at %s", config.url)
        return RestBackendClient(config)

    logger.warning(
        "SUPABASE_URL / SUPABASE_ANON_KEY not configured; using the in-memory backend (data is not persisted)"
    )
    return InMemoryBackend()
