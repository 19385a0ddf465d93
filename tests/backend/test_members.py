from uuid import uuid4

import pytest
from fastapi import status

from src.clinic_api.domain.models.user import Principal, UserRole
from src.clinic_api.domain.models.workspace import SubscriptionStatus, WorkspaceContext
from src.clinic_api.errors import Conflict
from src.clinic_api.services.members.service import MemberService


def members_url(clinic, member_id=None):
    url = f"/api/{clinic.slug}/members"
    return f"{url}/{member_id}" if member_id else url


async def test_admin_invites_existing_user(client, clinic, backend):
    invitee, _ = backend.add_user("nurse@clinic.com", nome="Nina", sobrenome="Enfermeira")
    response = await client.post(
        members_url(clinic),
        json={"email": "Nurse@Clinic.com", "role": "STAFF"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()["data"]
    assert data["user_id"] == invitee["id"]
    assert data["nome"] == "Nina"
    assert data["role"] == "STAFF"
    assert data["convidado_por"] == clinic.admin["id"]


async def test_invite_unknown_email_is_not_found(client, clinic):
    response = await client.post(
        members_url(clinic),
        json={"email": "ghost@clinic.com", "role": "STAFF"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["message"] == "User not found with this email"


async def test_invite_existing_member_is_rejected(client, clinic):
    response = await client.post(
        members_url(clinic),
        json={"email": "staff@clinica-central.com", "role": "PROFESSIONAL"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "User is already a member of this workspace"


async def test_second_admin_invite_is_rejected_and_nothing_changes(client, clinic, backend):
    backend.add_user("boss@clinic.com")
    before = [dict(row) for row in backend.tables["workspace_members"]]

    response = await client.post(
        members_url(clinic),
        json={"email": "boss@clinic.com", "role": "ADMIN"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Workspace already has an ADMIN"
    assert backend.tables["workspace_members"] == before


async def test_invite_with_unknown_role_fails_validation(client, clinic):
    response = await client.post(
        members_url(clinic),
        json={"email": "nurse@clinic.com", "role": "OWNER"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"][0]["field"] == "role"


async def test_invite_by_professional_is_forbidden(client, clinic, backend):
    backend.add_user("nurse@clinic.com")
    response = await client.post(
        members_url(clinic),
        json={"email": "nurse@clinic.com", "role": "STAFF"},
        headers=clinic.professional_headers,
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


async def test_list_members_is_paginated(client, clinic):
    response = await client.get(members_url(clinic), params={"limit": 2}, headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"total": 3, "page": 1, "limit": 2, "totalPages": 2}
    # Newest first.
    assert body["data"][0]["id"] == clinic.staff_member["id"]


async def test_get_member(client, clinic):
    response = await client.get(members_url(clinic, clinic.professional_member["id"]), headers=clinic.staff_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["email"] == "doctor@clinica-central.com"


async def test_get_unknown_member_is_not_found(client, clinic):
    response = await client.get(members_url(clinic, uuid4()), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


async def test_member_id_must_be_a_uuid(client, clinic):
    response = await client.get(members_url(clinic, "not-a-uuid"), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["details"][0]["field"] == "member_id"


async def test_update_member_role(client, clinic, backend):
    response = await client.patch(
        members_url(clinic, clinic.staff_member["id"]),
        json={"role": "PROFESSIONAL"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["role"] == "PROFESSIONAL"
    assert backend.find("workspace_members", id=clinic.staff_member["id"])["role"] == "PROFESSIONAL"


async def test_promoting_a_second_admin_is_rejected(client, clinic, backend):
    response = await client.patch(
        members_url(clinic, clinic.staff_member["id"]),
        json={"role": "ADMIN"},
        headers=clinic.admin_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Workspace already has an ADMIN"
    assert backend.find("workspace_members", id=clinic.staff_member["id"])["role"] == "STAFF"


async def test_remove_member(client, clinic, backend):
    response = await client.delete(members_url(clinic, clinic.staff_member["id"]), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Member removed successfully"}
    assert backend.find("workspace_members", id=clinic.staff_member["id"]) is None


async def test_admin_membership_cannot_be_removed(client, clinic, backend):
    response = await client.delete(members_url(clinic, clinic.admin_member["id"]), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Cannot remove the workspace ADMIN"
    assert backend.find("workspace_members", id=clinic.admin_member["id"]) is not None


async def test_remove_member_from_another_workspace_is_not_found(client, clinic, backend):
    other = backend.add_workspace("Outra", "outra-clinica", clinic.admin["id"])
    foreign_user, _ = backend.add_user("foreign@clinic.com")
    foreign = backend.add_member(other["id"], foreign_user["id"], "STAFF")

    response = await client.delete(members_url(clinic, foreign["id"]), headers=clinic.admin_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert backend.find("workspace_members", id=foreign["id"]) is not None


async def test_service_refuses_to_remove_the_callers_own_membership(clinic, backend):
    context = WorkspaceContext(
        principal=Principal(id=clinic.staff["id"], email=clinic.staff["email"], access_token=clinic.staff_token),
        workspace_id=clinic.workspace["id"],
        workspace_slug=clinic.slug,
        role=UserRole.STAFF,
        subscription_status=SubscriptionStatus.TRIAL,
    )
    with pytest.raises(Conflict) as excinfo:
        await MemberService(backend).remove(context, clinic.staff_member["id"])
    assert excinfo.value.message == "You cannot remove yourself from the workspace"
    assert backend.find("workspace_members", id=clinic.staff_member["id"]) is not None
