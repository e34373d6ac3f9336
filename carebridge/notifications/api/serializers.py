from __future__ import annotations

from typing import Any

from rest_framework import serializers

from carebridge.notifications.models import Notification
from carebridge.users.models import UserProfile


class NotificationSerializer(serializers.ModelSerializer):
    """Read serializer for notifications."""

    unread = serializers.SerializerMethodField()

    class Meta:
        model = Notification
        fields = (
            "id",
            "recipient",
            "title",
            "message",
            "notification_type",
            "is_read",
            "unread",
            "data",
            "created_at",
        )
        read_only_fields = (
            "id",
            "recipient",
            "is_read",
            "created_at",
        )

    def get_unread(self, obj: Notification) -> bool:
        return not bool(obj.is_read)


class NotificationCreateSerializer(serializers.Serializer):
    """Create serializer.

    Exactly one target is required:
    - recipient_id: int, one notification for that user
    - role: str, one notification per active user with that role
    """

    title = serializers.CharField(max_length=255)
    message = serializers.CharField()
    notification_type = serializers.ChoiceField(
        choices=Notification.Type.choices,
        required=False,
        default=Notification.Type.SYSTEM,
    )
    data = serializers.DictField(required=False, default=dict)

    recipient_id = serializers.IntegerField(required=False, allow_null=True)
    role = serializers.ChoiceField(
        choices=UserProfile.Role.choices,
        required=False,
        allow_blank=True,
    )

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        # Treat null/blank targets as missing so forms can send empty fields
        if attrs.get("recipient_id") is None:
            attrs.pop("recipient_id", None)
        if not attrs.get("role"):
            attrs.pop("role", None)

        targets = ["recipient_id" in attrs, "role" in attrs]
        if sum(targets) != 1:
            msg = "Provide exactly one of recipient_id, role."
            raise serializers.ValidationError(msg)
        return attrs
