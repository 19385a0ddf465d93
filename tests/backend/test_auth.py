from fastapi import status


async def test_signup_creates_user_and_session(client, backend):
    response = await client.post(
        "/api/auth/signup",
        json={"nome": "Joana", "sobrenome": "Lima", "email": "  Joana@Clinic.com ", "senha": "Secret123"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["message"] == "User created successfully"
    assert body["data"]["user"]["email"] == "joana@clinic.com"
    assert body["data"]["session"]["access_token"]

    row = backend.find("users", email="joana@clinic.com")
    assert row["nome"] == "Joana"
    assert row["sobrenome"] == "Lima"
    assert row["onboarding"] is False


async def test_signup_duplicate_email_is_rejected(client, backend):
    backend.add_user("taken@clinic.com")
    response = await client.post(
        "/api/auth/signup",
        json={"nome": "Joana", "sobrenome": "Lima", "email": "taken@clinic.com", "senha": "Secret123"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "User already registered"


async def test_signup_validation_errors_are_cumulative(client):
    response = await client.post(
        "/api/auth/signup",
        json={"nome": "J", "sobrenome": "Lima", "email": "not-an-email", "senha": "weak"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    body = response.json()
    assert body["status"] == "error"
    assert body["message"] == "Validation error"
    fields = {detail["field"] for detail in body["details"]}
    assert {"nome", "email", "senha"} <= fields


async def test_password_strength_is_enforced(client):
    response = await client.post(
        "/api/auth/signup",
        json={"nome": "Joana", "sobrenome": "Lima", "email": "joana@clinic.com", "senha": "alllowercase1"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    details = response.json()["details"]
    assert details[0]["field"] == "senha"
    assert "uppercase" in details[0]["message"]


async def test_login_returns_session_workspaces_and_onboarding_flag(client, clinic):
    response = await client.post("/api/auth/login", json={"email": "ADMIN@clinica-central.com", "senha": "Secret123"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["user"]["id"] == clinic.admin["id"]
    assert data["session"]["access_token"]
    assert data["onboarding_completo"] is True
    assert data["workspaces"] == [
        {
            "id": clinic.workspace["id"],
            "slug": clinic.slug,
            "nome": "Clinica Central",
            "role": "ADMIN",
            "status_assinatura": "trial",
        }
    ]


async def test_login_with_wrong_password_is_unauthorized(client, clinic):
    response = await client.post("/api/auth/login", json={"email": "admin@clinica-central.com", "senha": "Wrong1234"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"status": "error", "message": "Invalid email or password"}


async def test_logout_revokes_the_token(client, clinic):
    response = await client.post("/api/auth/logout", headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Logged out successfully"}

    me = await client.get("/api/auth/me", headers=clinic.admin_headers)
    assert me.status_code == status.HTTP_401_UNAUTHORIZED


async def test_logout_without_token_still_succeeds(client):
    response = await client.post("/api/auth/logout")
    assert response.status_code == status.HTTP_200_OK


async def test_forgot_password_answers_generically(client):
    response = await client.post("/api/auth/forgot-password", json={"email": "nobody@clinic.com"})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"].startswith("If the email exists")


async def test_reset_password_requires_a_strong_password(client):
    response = await client.post("/api/auth/reset-password", json={"token": "abc", "nova_senha": "short"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await client.post("/api/auth/reset-password", json={"token": "abc", "nova_senha": "NewSecret123"})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "Password reset successfully"


async def test_me_and_workspaces(client, clinic):
    me = await client.get("/api/auth/me", headers=clinic.staff_headers)
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["data"]["user"]["email"] == "staff@clinica-central.com"

    workspaces = await client.get("/api/auth/workspaces", headers=clinic.staff_headers)
    assert [w["role"] for w in workspaces.json()["data"]] == ["STAFF"]


async def test_workspaces_list_skips_inactive_memberships(client, clinic, backend):
    backend.update_rows("workspace_members", {"ativo": False}, [])  # every membership
    response = await client.get("/api/auth/workspaces", headers=clinic.staff_headers)
    assert response.json()["data"] == []


async def test_onboarding_creates_first_workspace(client, backend):
    user, token = backend.add_user("new@clinic.com", onboarding=False)
    response = await client.post(
        "/api/auth/onboarding",
        json={"nome_workspace": "Clínica São José"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["workspace"]["slug"] == "clinica-sao-jose"
    assert data["onboarding_completo"] is True

    workspace = backend.find("workspaces", slug="clinica-sao-jose")
    assert workspace["owner_id"] == user["id"]
    member = backend.find("workspace_members", workspace_id=workspace["id"], user_id=user["id"])
    assert member["role"] == "ADMIN"
    assert backend.find("users", id=user["id"])["onboarding"] is True


async def test_onboarding_twice_is_rejected(client, clinic):
    response = await client.post(
        "/api/auth/onboarding",
        json={"nome_workspace": "Outra Clinica"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Onboarding already completed"


async def test_onboarding_with_taken_slug_is_rejected(client, clinic, backend):
    _, token = backend.add_user("late@clinic.com", onboarding=False)
    response = await client.post(
        "/api/auth/onboarding",
        json={"nome_workspace": "Clinica Central", "slug": clinic.slug},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Workspace slug already in use"


async def test_signup_minimal_scenario(client):
    response = await client.post(
        "/api/auth/signup",
        json={"nome": "Ana", "sobrenome": "Silva", "email": "ana@x.com", "senha": "Abcdef12"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["user"]["email"] == "ana@x.com"
    assert data["session"]["access_token"]


async def test_onboarding_with_long_name_gives_a_reachable_slug(client, backend):
    _, token = backend.add_user("long@clinic.com", onboarding=False)
    headers = {"Authorization": f"Bearer {token}"}
    response = await client.post(
        "/api/auth/onboarding",
        json={"nome_workspace": "Clinica Medica Integrada de Especialidades Pediatricas do Sul"},
        headers=headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    slug = response.json()["data"]["workspace"]["slug"]
    assert 3 <= len(slug) <= 50

    response = await client.get(f"/api/workspaces/{slug}", headers=headers)
    assert response.status_code == status.HTTP_200_OK


async def test_onboarding_name_too_short_for_a_slug_is_rejected(client, backend):
    user, token = backend.add_user("short@clinic.com", onboarding=False)
    response = await client.post(
        "/api/auth/onboarding",
        json={"nome_workspace": "Dr."},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Could not derive a valid slug from the workspace name"
    assert backend.find("users", id=user["id"])["onboarding"] is False
