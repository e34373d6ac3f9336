from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.utils import timezone

from carebridge.chat.models import Conversation
from carebridge.chat.models import Message
from carebridge.chat.serializers import MessageSerializer
from carebridge.notifications.models import Notification
from carebridge.notifications.services import notify

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100


def get_conversation(conversation_id) -> Conversation:
    conversation = Conversation.objects.filter(pk=conversation_id).first()
    if conversation is None:
        msg = "Conversation not found"
        raise Conversation.DoesNotExist(msg)
    return conversation


def recent_messages(conversation_id, limit: int = 50) -> list[dict[str, Any]]:
    """Return the latest ``limit`` messages of a conversation, oldest first."""

    latest = list(
        Message.objects.filter(conversation_id=conversation_id).order_by(
            "-created_at",
        )[:limit],
    )
    latest.reverse()
    return list(MessageSerializer(latest, many=True).data)


@transaction.atomic
def create_message(
    conversation_id,
    *,
    sender_id: int,
    sender_type: str,
    content: str,
    message_type: str = Message.Type.TEXT,
) -> dict[str, Any]:
    conversation = get_conversation(conversation_id)
    message = Message.objects.create(
        conversation=conversation,
        sender_id=sender_id,
        sender_type=sender_type.lower(),
        content=content,
        message_type=message_type,
    )
    # Bump last activity without touching other columns
    Conversation.objects.filter(pk=conversation.pk).update(updated_at=timezone.now())
    return dict(MessageSerializer(message).data)


@transaction.atomic
def mark_messages_read(conversation_id, *, reader_id: int, message_id=None) -> int:
    """Mark messages sent by others as read for ``reader_id``.

    With ``message_id`` only that message is touched; otherwise every unread
    message in the conversation is. Returns the number of updated rows.
    """

    unread = Message.objects.filter(
        conversation_id=conversation_id,
        is_read=False,
    ).exclude(sender_id=reader_id)
    if message_id is not None:
        if not Message.objects.filter(
            pk=message_id,
            conversation_id=conversation_id,
        ).exists():
            msg = "Message not found"
            raise Message.DoesNotExist(msg)
        unread = unread.filter(pk=message_id)
    return unread.update(is_read=True, read_at=timezone.now())


def notify_new_message(conversation_id, *, sender_id: int, message: dict[str, Any]):
    """Create a ``message`` notification for the other participant."""

    conversation = get_conversation(conversation_id)
    recipient_id = conversation.other_participant_id(sender_id)
    if recipient_id is None:
        return None

    content = message.get("content") or ""
    preview = content[:PREVIEW_LENGTH]
    if len(content) > PREVIEW_LENGTH:
        preview = f"{preview}..."
    return notify(
        recipient_id,
        title="New message",
        message=preview,
        notification_type=Notification.Type.MESSAGE,
        data={
            "conversationId": str(conversation.pk),
            "messageId": str(message.get("id")),
            "senderId": sender_id,
        },
    )
