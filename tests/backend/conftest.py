from typing import Any, Dict, Tuple

import pytest
from httpx import ASGITransport, AsyncClient

from src.clinic_api.config import Settings
from src.clinic_api.infra.backend.inmemory import InMemoryBackend
from src.clinic_api.main import create_app


@pytest.fixture
def settings() -> Settings:
    return Settings(backend_url=None, backend_anon_key=None, environment="development")


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def app(settings, backend):
    return create_app(settings=settings, backend=backend)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class Clinic:
    """A seeded workspace with one user per role."""

    def __init__(self, backend: InMemoryBackend, slug: str = "clinica-central") -> None:
        self.backend = backend
        self.admin, self.admin_token = backend.add_user(f"admin@{slug}.com", nome="Ana", sobrenome="Admin")
        self.professional, self.professional_token = backend.add_user(
            f"doctor@{slug}.com", nome="Paulo", sobrenome="Medico"
        )
        self.staff, self.staff_token = backend.add_user(f"staff@{slug}.com", nome="Sara", sobrenome="Recepcao")
        self.workspace = backend.add_workspace("Clinica Central", slug, self.admin["id"])
        self.slug = slug
        self.admin_member = backend.add_member(self.workspace["id"], self.admin["id"], "ADMIN")
        self.professional_member = backend.add_member(self.workspace["id"], self.professional["id"], "PROFESSIONAL")
        self.staff_member = backend.add_member(self.workspace["id"], self.staff["id"], "STAFF")

    @staticmethod
    def headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @property
    def admin_headers(self) -> Dict[str, str]:
        return self.headers(self.admin_token)

    @property
    def professional_headers(self) -> Dict[str, str]:
        return self.headers(self.professional_token)

    @property
    def staff_headers(self) -> Dict[str, str]:
        return self.headers(self.staff_token)

    def add_patient(self, nome: str = "Maria da Silva", **values: Any) -> Dict[str, Any]:
        return self.backend.add_patient(self.workspace["id"], nome, **values)

    def add_consultation(self, patient: Dict[str, Any], professional_id: str = None, **values: Any) -> Dict[str, Any]:
        return self.backend.add_consultation(
            self.workspace["id"],
            patient["id"],
            professional_id or self.professional["id"],
            **values,
        )

    def outsider(self, email: str = "outsider@other.com") -> Tuple[Dict[str, Any], str]:
        return self.backend.add_user(email, nome="Otto", sobrenome="Fora")


@pytest.fixture
def clinic(backend) -> Clinic:
    return Clinic(backend)
