import pytest
from django.urls import resolve
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from carebridge.users.models import UserProfile
from tests.factories import create_user


def test_user_detail_url():
    assert (
        reverse("api_v1:user-detail", kwargs={"username": "ada"})
        == "/api/v1/users/ada/"
    )
    assert resolve("/api/v1/users/ada/").view_name == "api_v1:user-detail"


def test_user_me_url():
    assert reverse("api_v1:user-me") == "/api/v1/users/me/"
    assert resolve("/api/v1/users/me/").view_name == "api_v1:user-me"


@pytest.mark.django_db
def test_me_includes_role(physician):
    client = APIClient()
    client.force_authenticate(physician)

    r = client.get("/api/v1/users/me/")

    assert r.status_code == status.HTTP_200_OK
    assert r.data["role"] == "PHYSICIAN"


@pytest.mark.django_db
def test_list_is_limited_to_self_for_non_staff(patient, physician):
    client = APIClient()
    client.force_authenticate(patient)

    r = client.get("/api/v1/users/")

    assert [u["username"] for u in r.data] == [patient.username]


@pytest.mark.django_db
def test_staff_lists_everyone(patient, physician):
    staff = create_user("staff", is_staff=True)
    client = APIClient()
    client.force_authenticate(staff)

    r = client.get("/api/v1/users/")

    assert {u["username"] for u in r.data} == {"patient", "physician", "staff"}


@pytest.mark.django_db
def test_support_agent_sees_directory_filtered_by_role(patient, physician):
    agent = create_user("agent", role=UserProfile.Role.AGENT)
    client = APIClient()
    client.force_authenticate(agent)

    r = client.get("/api/v1/users/", {"role": "physician"})

    assert r.status_code == status.HTTP_200_OK
    assert [u["username"] for u in r.data] == [physician.username]


@pytest.mark.django_db
def test_role_filter_ignored_for_patients(patient, physician):
    client = APIClient()
    client.force_authenticate(patient)

    r = client.get("/api/v1/users/", {"role": "PHYSICIAN"})

    assert [u["username"] for u in r.data] == [patient.username]


@pytest.mark.django_db
def test_directory_is_read_only(patient):
    agent = create_user("agent", role=UserProfile.Role.AGENT)
    client = APIClient()
    client.force_authenticate(agent)

    r = client.patch(f"/api/v1/users/{patient.username}/", {"first_name": "Mallory"})

    assert r.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
    patient.refresh_from_db()
    assert patient.first_name == "Patient"
