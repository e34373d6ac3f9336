from __future__ import annotations

from typing import Any

from rest_framework import serializers

from carebridge.users.models import User
from carebridge.users.models import UserProfile


class UserProfileSnapshotSerializer(serializers.ModelSerializer[UserProfile]):
    """Compact profile carried in realtime payloads as ``userProfile``."""

    userId = serializers.IntegerField(source="user_id", read_only=True)  # noqa: N815
    name = serializers.CharField(source="user.display_name", read_only=True)
    avatarUrl = serializers.CharField(source="avatar_url", read_only=True)  # noqa: N815

    class Meta:
        model = UserProfile
        fields = ["id", "userId", "role", "name", "specialty", "avatarUrl"]


def profile_snapshot(profile: UserProfile) -> dict[str, Any]:
    return dict(UserProfileSnapshotSerializer(profile).data)


class UserSerializer(serializers.ModelSerializer[User]):
    full_name = serializers.CharField(source="name", read_only=True)
    id = serializers.IntegerField(read_only=True)
    role = serializers.CharField(source="profile.role", read_only=True)

    # Identity fields are managed through the admin
    username = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "first_name",
            "last_name",
            "full_name",
            "email",
            "role",
        ]

    def update(self, instance, validated_data):
        forbidden = {k for k in ("username", "email") if k in self.initial_data}
        if forbidden:
            errors = {f: "This field is read-only." for f in forbidden}
            raise serializers.ValidationError(errors)
        instance.first_name = validated_data.get("first_name", instance.first_name)
        instance.last_name = validated_data.get("last_name", instance.last_name)
        instance.save()
        return instance
