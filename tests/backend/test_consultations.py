from uuid import uuid4

from fastapi import status


def consultations_url(clinic, suffix=""):
    return f"/api/{clinic.slug}/consultations{suffix}"


async def test_professional_opens_consultation(client, clinic):
    patient = clinic.add_patient()
    response = await client.post(
        consultations_url(clinic),
        json={"paciente_id": patient["id"], "queixa_principal": "Dor de cabeça há três dias"},
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["paciente_id"] == patient["id"]
    assert data["profissional_id"] == clinic.professional["id"]
    assert data["status"] == "in_progress"


async def test_consultation_for_unknown_patient_is_not_found(client, clinic):
    response = await client.post(
        consultations_url(clinic),
        json={"paciente_id": str(uuid4())},
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


async def test_staff_cannot_open_consultations(client, clinic):
    patient = clinic.add_patient()
    response = await client.post(
        consultations_url(clinic),
        json={"paciente_id": patient["id"]},
        headers=clinic.staff_headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_list_consultations_with_filters(client, clinic, backend):
    maria = clinic.add_patient("Maria da Silva")
    joao = clinic.add_patient("Joao Souza")
    clinic.add_consultation(maria, iniciada_em="2024-03-01T10:00:00+00:00")
    clinic.add_consultation(maria, iniciada_em="2024-03-10T10:00:00+00:00", status="completed")
    clinic.add_consultation(joao, clinic.admin["id"], iniciada_em="2024-03-20T10:00:00+00:00")

    response = await client.get(consultations_url(clinic), headers=clinic.staff_headers)
    body = response.json()
    assert body["pagination"]["total"] == 3
    assert body["data"][0]["patients"]["nome"] == "Joao Souza"

    response = await client.get(
        consultations_url(clinic),
        params={"paciente_id": maria["id"], "status": "completed"},
        headers=clinic.staff_headers,
    )
    assert [c["iniciada_em"][:10] for c in response.json()["data"]] == ["2024-03-10"]

    response = await client.get(
        consultations_url(clinic),
        params={"data_inicio": "2024-03-10", "data_fim": "2024-03-20"},
        headers=clinic.staff_headers,
    )
    assert response.json()["pagination"]["total"] == 2

    response = await client.get(
        consultations_url(clinic),
        params={"profissional_id": clinic.admin["id"]},
        headers=clinic.staff_headers,
    )
    assert [c["paciente_id"] for c in response.json()["data"]] == [joao["id"]]


async def test_end_date_before_start_date_is_rejected(client, clinic):
    response = await client.get(
        consultations_url(clinic),
        params={"data_inicio": "2024-03-10", "data_fim": "2024-03-01"},
        headers=clinic.staff_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"] == [
        {"field": "data_fim", "message": "End date must be on or after the start date"}
    ]


async def test_get_consultation_detail(client, clinic):
    patient = clinic.add_patient()
    consultation = clinic.add_consultation(patient)
    response = await client.get(consultations_url(clinic, f"/{consultation['id']}"), headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["patients"]["id"] == patient["id"]
    assert data["users"]["nome"] == "Paulo"
    assert data["transcriptions"] == []
    assert data["analysis_results"] == []


async def test_owner_completes_consultation(client, clinic, backend):
    patient = clinic.add_patient()
    consultation = clinic.add_consultation(patient)
    response = await client.patch(
        consultations_url(clinic, f"/{consultation['id']}"),
        json={"status": "completed"},
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["concluida_em"] is not None
    assert data["duracao_minutos"] == 0


async def test_other_professional_cannot_update_consultation(client, clinic, backend):
    colleague, token = backend.add_user("colleague@clinic.com")
    backend.add_member(clinic.workspace["id"], colleague["id"], "PROFESSIONAL")
    patient = clinic.add_patient()
    consultation = clinic.add_consultation(patient)

    response = await client.patch(
        consultations_url(clinic, f"/{consultation['id']}"),
        json={"queixa_principal": "Alterada por outro"},
        headers=clinic.headers(token),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["message"] == "Only the owner or an ADMIN can modify this resource"
    assert backend.find("consultations", id=consultation["id"]).get("queixa_principal") is None


async def test_admin_can_update_any_consultation(client, clinic):
    patient = clinic.add_patient()
    consultation = clinic.add_consultation(patient)
    response = await client.patch(
        consultations_url(clinic, f"/{consultation['id']}"),
        json={"queixa_principal": "Febre e tosse"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["queixa_principal"] == "Febre e tosse"


async def test_invalid_status_fails_validation(client, clinic):
    patient = clinic.add_patient()
    consultation = clinic.add_consultation(patient)
    response = await client.patch(
        consultations_url(clinic, f"/{consultation['id']}"),
        json={"status": "paused"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"][0]["field"] == "status"


async def test_update_consultation_of_another_workspace_is_not_found(client, clinic, backend):
    other = backend.add_workspace("Outra", "outra-clinica", clinic.admin["id"])
    foreign_patient = backend.add_patient(other["id"], "Paciente Alheio")
    foreign = backend.add_consultation(other["id"], foreign_patient["id"], clinic.professional["id"])

    response = await client.patch(
        consultations_url(clinic, f"/{foreign['id']}"),
        json={"queixa_principal": "Alterada"},
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


async def test_delete_consultation_removes_its_messages(client, clinic, backend):
    patient = clinic.add_patient()
    consultation = clinic.add_consultation(patient)
    backend.insert_row(
        "chat_messages",
        {"consulta_id": consultation["id"], "user_id": clinic.professional["id"], "conteudo": "Olá"},
    )

    response = await client.delete(consultations_url(clinic, f"/{consultation['id']}"), headers=clinic.professional_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Consultation deleted successfully"}
    assert backend.tables["consultations"] == []
    assert backend.tables["chat_messages"] == []


async def test_admin_cannot_reach_consultations_of_other_workspaces(client, clinic, backend):
    other = backend.add_workspace("Outra", "outra-clinica", clinic.admin["id"])
    foreign_patient = backend.add_patient(other["id"], "Paciente Alheio")
    foreign = backend.add_consultation(other["id"], foreign_patient["id"], clinic.professional["id"])

    response = await client.delete(consultations_url(clinic, f"/{foreign['id']}"), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert len(backend.tables["consultations"]) == 1
