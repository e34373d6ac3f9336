from rest_framework import serializers

from carebridge.chat.models import Message


class MessageSerializer(serializers.ModelSerializer):
    """Wire shape of a chat message in realtime payloads."""

    conversationId = serializers.UUIDField(source="conversation_id", read_only=True)  # noqa: N815
    senderId = serializers.IntegerField(source="sender_id", read_only=True)  # noqa: N815
    senderType = serializers.CharField(source="sender_type", read_only=True)  # noqa: N815
    messageType = serializers.CharField(source="message_type", read_only=True)  # noqa: N815
    isRead = serializers.BooleanField(source="is_read", read_only=True)  # noqa: N815
    readAt = serializers.DateTimeField(source="read_at", read_only=True)  # noqa: N815
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)  # noqa: N815

    class Meta:
        model = Message
        fields = (
            "id",
            "conversationId",
            "senderId",
            "senderType",
            "messageType",
            "content",
            "isRead",
            "readAt",
            "createdAt",
        )
