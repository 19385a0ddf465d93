from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Centralized application settings.

    This keeps environment-variable handling in one place so other modules can
    depend on strongly-typed attributes instead of calling os.getenv
    directly. Instances are immutable; the app factory receives one and hands
    it to whatever needs it.
    """

    # Managed backend (table API, stored procedures and identity provider).
    # When either value is missing the in-memory backend is used instead.
    backend_url: Optional[str] = os.getenv("SUPABASE_URL")
    backend_anon_key: Optional[str] = os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY")
    backend_timeout_seconds: float = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "10"))

    # HTTP server.
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    api_prefix: str = os.getenv("API_PREFIX", "/api")

    # Runtime environment name, e.g. "development", "staging", "production".
    environment: str = os.getenv("APP_ENV", "development")

    # CORS configuration: comma-separated origins (e.g. "https://app.example.com,https://admin.example.com").
    # Default is "*" (allow all) which is acceptable for local development but
    # should be tightened in production.
    cors_allow_origins: str = os.getenv("CORS_ALLOW_ORIGINS", "*")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def use_remote_backend(self) -> bool:
        return bool(self.backend_url and self.backend_anon_key)

    def allowed_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()] or ["*"]


settings = Settings()
