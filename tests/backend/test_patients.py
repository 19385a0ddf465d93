from uuid import uuid4

from fastapi import status


def patients_url(clinic, suffix=""):
    return f"/api/{clinic.slug}/patients{suffix}"


async def test_create_patient(client, clinic, backend):
    response = await client.post(
        patients_url(clinic),
        json={
            "nome": "  Maria da Silva ",
            "data_nascimento": "1985-04-12",
            "cpf": "123.456.789-00",
            "telefone": "(11) 98765-4321",
            "email": "Maria@Email.com",
        },
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["nome"] == "Maria da Silva"
    assert data["data_nascimento"] == "1985-04-12"
    assert data["email"] == "maria@email.com"
    assert data["workspace_id"] == clinic.workspace["id"]
    assert data["created_by"] == clinic.professional["id"]
    assert len(backend.tables["patients"]) == 1


async def test_create_patient_validation(client, clinic):
    response = await client.post(
        patients_url(clinic),
        json={"nome": "Al", "cpf": "12345", "telefone": "abc", "data_nascimento": "2999-01-01"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    fields = {detail["field"] for detail in response.json()["details"]}
    assert fields == {"nome", "cpf", "telefone", "data_nascimento"}


async def test_create_patient_as_staff_is_forbidden(client, clinic, backend):
    response = await client.post(patients_url(clinic), json={"nome": "Maria da Silva"}, headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["message"] == "Access denied. Allowed roles: ADMIN, PROFESSIONAL"
    assert backend.tables["patients"] == []


async def test_duplicate_cpf_is_rejected(client, clinic):
    clinic.add_patient(cpf="12345678900")
    response = await client.post(
        patients_url(clinic),
        json={"nome": "Outra Maria", "cpf": "12345678900"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "A patient with this CPF already exists"


async def test_list_patients_paginates(client, clinic):
    for i in range(25):
        clinic.add_patient(f"Paciente {i:02d}")

    response = await client.get(patients_url(clinic), params={"page": 1, "limit": 10}, headers=clinic.staff_headers)
    body = response.json()
    assert len(body["data"]) == 10
    assert body["pagination"] == {"total": 25, "page": 1, "limit": 10, "totalPages": 3}

    response = await client.get(patients_url(clinic), params={"page": 3, "limit": 10}, headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert len(body["data"]) == 5
    assert body["pagination"] == {"total": 25, "page": 3, "limit": 10, "totalPages": 3}
    # Newest first, so the last page holds the oldest patients.
    assert body["data"][-1]["nome"] == "Paciente 00"


async def test_list_patients_rejects_oversized_page(client, clinic):
    response = await client.get(patients_url(clinic), params={"limit": 101}, headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"][0]["field"] == "limit"


async def test_list_patients_with_search(client, clinic):
    clinic.add_patient("Maria da Silva")
    clinic.add_patient("Joao Souza", cpf="98765432100")

    response = await client.get(patients_url(clinic), params={"search": "maria"}, headers=clinic.staff_headers)
    assert [p["nome"] for p in response.json()["data"]] == ["Maria da Silva"]

    response = await client.get(patients_url(clinic), params={"search": "98765"}, headers=clinic.staff_headers)
    assert [p["nome"] for p in response.json()["data"]] == ["Joao Souza"]


async def test_patients_are_isolated_per_workspace(client, clinic, backend):
    other = backend.add_workspace("Outra", "outra-clinica", clinic.admin["id"])
    backend.add_patient(other["id"], "Paciente Alheio")
    clinic.add_patient("Maria da Silva")

    response = await client.get(patients_url(clinic), headers=clinic.staff_headers)
    assert [p["nome"] for p in response.json()["data"]] == ["Maria da Silva"]


async def test_search_patients(client, clinic):
    clinic.add_patient("Maria da Silva")
    clinic.add_patient("Mariana Costa")
    clinic.add_patient("Joao Souza")

    response = await client.get(patients_url(clinic, "/search"), params={"q": "mari"}, headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    matches = response.json()["data"]
    assert [m["nome"] for m in matches] == ["Maria da Silva", "Mariana Costa"]
    assert set(matches[0]) == {"id", "nome", "cpf", "telefone"}


async def test_search_with_short_term_returns_nothing(client, clinic):
    clinic.add_patient("Maria da Silva")
    response = await client.get(patients_url(clinic, "/search"), params={"q": "m"}, headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"] == []


async def test_search_requires_a_term(client, clinic):
    response = await client.get(patients_url(clinic, "/search"), headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"][0]["field"] == "q"


async def test_get_patient_with_consultation_summary(client, clinic):
    patient = clinic.add_patient()
    clinic.add_consultation(patient)
    latest = clinic.add_consultation(patient)

    response = await client.get(patients_url(clinic, f"/{patient['id']}"), headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["patient"]["id"] == patient["id"]
    assert data["consultations_count"] == 2
    assert data["last_consultation"]["id"] == latest["id"]


async def test_get_unknown_patient_is_not_found(client, clinic):
    response = await client.get(patients_url(clinic, f"/{uuid4()}"), headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "Patient not found"


async def test_update_patient_keeps_unsent_fields(client, clinic):
    patient = clinic.add_patient(cpf="12345678900", telefone="11987654321")
    response = await client.patch(
        patients_url(clinic, f"/{patient['id']}"),
        json={"telefone": "(11) 91234-5678"},
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["telefone"] == "(11) 91234-5678"
    assert data["cpf"] == "12345678900"


async def test_update_patient_of_another_workspace_is_not_found(client, clinic, backend):
    other = backend.add_workspace("Outra", "outra-clinica", clinic.admin["id"])
    foreign = backend.add_patient(other["id"], "Paciente Alheio")
    response = await client.patch(
        patients_url(clinic, f"/{foreign['id']}"),
        json={"nome": "Nome Trocado"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert backend.find("patients", id=foreign["id"])["nome"] == "Paciente Alheio"


async def test_delete_patient(client, clinic, backend):
    patient = clinic.add_patient()
    response = await client.delete(patients_url(clinic, f"/{patient['id']}"), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Patient deleted successfully"}
    assert backend.tables["patients"] == []


async def test_patient_with_consultations_cannot_be_deleted(client, clinic, backend):
    patient = clinic.add_patient()
    clinic.add_consultation(patient)
    response = await client.delete(patients_url(clinic, f"/{patient['id']}"), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Patient has consultations and cannot be deleted"
    assert len(backend.tables["patients"]) == 1
