import pytest
from django.contrib.auth import get_user_model

from carebridge.users.api.serializers import profile_snapshot
from carebridge.users.models import UserProfile

User = get_user_model()


@pytest.mark.django_db
class TestUserProfile:
    def test_profile_created_with_patient_role(self):
        user = User.objects.create_user(
            username="newpatient",
            email="newpatient@example.com",
            password="TestPass123!",  # noqa: S106
        )
        assert user.profile.role == UserProfile.Role.PATIENT
        assert user.profile.is_active is True

    def test_superuser_gets_admin_role(self):
        admin = User.objects.create_superuser(
            username="root",
            email="root@example.com",
            password="TestPass123!",  # noqa: S106
        )
        assert admin.profile.role == UserProfile.Role.ADMIN

    def test_full_name_built_from_parts(self):
        user = User.objects.create_user(
            username="ada",
            email="ada@example.com",
            first_name="Ada",
            last_name="Obi",
        )
        assert user.name == "Ada Obi"
        assert user.display_name == "Ada Obi"

    def test_profile_snapshot(self, physician):
        physician.profile.specialty = "Cardiology"
        physician.profile.save()

        snapshot = profile_snapshot(physician.profile)

        assert snapshot["userId"] == physician.pk
        assert snapshot["role"] == UserProfile.Role.PHYSICIAN
        assert snapshot["specialty"] == "Cardiology"
        assert snapshot["name"] == physician.display_name
