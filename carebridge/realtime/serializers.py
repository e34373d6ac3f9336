"""Shape validation for inbound socket payloads."""

from __future__ import annotations

from typing import Any

from django.core.validators import RegexValidator
from rest_framework import serializers

from carebridge.chat.models import Message
from carebridge.realtime.exceptions import ProtocolMisuse
from carebridge.realtime.presence import CLIENT_STATUSES

MAX_MESSAGE_LENGTH = 10000
MAX_PRESENCE_QUERY = 500

channel_name_validator = RegexValidator(
    r"^[A-Za-z0-9_-]{1,64}$",
    message="Channel names may only contain letters, digits, '_' and '-'.",
)


def validate_payload(serializer_class, data: Any, **context) -> dict[str, Any]:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = "Payload must be an object"
        raise ProtocolMisuse(msg)
    serializer = serializer_class(data=data, context=context)
    if not serializer.is_valid():
        raise ProtocolMisuse(details=serializer.errors)
    return dict(serializer.validated_data)


class ConversationPayloadSerializer(serializers.Serializer):
    conversationId = serializers.UUIDField()  # noqa: N815


class ChatMessagePayloadSerializer(ConversationPayloadSerializer):
    content = serializers.CharField(max_length=MAX_MESSAGE_LENGTH)
    messageType = serializers.ChoiceField(  # noqa: N815
        choices=Message.Type.choices,
        required=False,
        default=Message.Type.TEXT,
    )


class ChatMarkReadPayloadSerializer(ConversationPayloadSerializer):
    messageId = serializers.UUIDField(required=False, allow_null=True)  # noqa: N815


class SessionPayloadSerializer(serializers.Serializer):
    sessionId = serializers.UUIDField()  # noqa: N815


class SignalPayloadSerializer(SessionPayloadSerializer):
    """Offer, answer and ICE candidate envelopes.

    The negotiation body travels under its own key (``offer``, ``answer``,
    ``candidate``) or under ``payload``; it is handed on untouched.
    """

    targetUserId = serializers.IntegerField(min_value=1)  # noqa: N815

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        kind = self.context["kind"]
        for key in (kind, "payload"):
            if key in self.initial_data and self.initial_data[key] is not None:
                attrs["body"] = self.initial_data[key]
                return attrs
        msg = f"Either '{kind}' or 'payload' is required."
        raise serializers.ValidationError({kind: [msg]})


class PresenceStatusPayloadSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=CLIENT_STATUSES)


class PresenceQueryPayloadSerializer(serializers.Serializer):
    userIds = serializers.ListField(  # noqa: N815
        child=serializers.IntegerField(min_value=1),
        max_length=MAX_PRESENCE_QUERY,
    )


class SubscribePayloadSerializer(serializers.Serializer):
    channels = serializers.ListField(
        child=serializers.CharField(validators=[channel_name_validator]),
        required=False,
        default=list,
        max_length=50,
    )

    def validate_channels(self, value: list[str]) -> list[str]:
        # Numeric names are personal channels of other users
        numeric = [name for name in value if name.isdigit()]
        if numeric:
            msg = "Numeric channel names are reserved."
            raise serializers.ValidationError(msg)
        return list(dict.fromkeys(value))


class NotificationMarkReadPayloadSerializer(serializers.Serializer):
    notificationId = serializers.IntegerField(  # noqa: N815
        required=False,
        allow_null=True,
        min_value=1,
    )
    markAllAsRead = serializers.BooleanField(  # noqa: N815
        required=False,
        default=False,
    )

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if not attrs.get("markAllAsRead") and attrs.get("notificationId") is None:
            msg = "Provide notificationId or markAllAsRead."
            raise serializers.ValidationError(msg)
        return attrs
