"""Chat relay.

Participation is re-read from the database on join, send and mark-read, so a
user removed from a conversation cannot keep posting through an already
joined connection. Typing indicators only need live room membership.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings

from carebridge.chat import services as chat_services
from carebridge.realtime.dispatch import call_store
from carebridge.realtime.exceptions import ProtocolMisuse
from carebridge.realtime.rooms import authorize_conversation
from carebridge.realtime.rooms import conversation_room
from carebridge.realtime.serializers import ChatMarkReadPayloadSerializer
from carebridge.realtime.serializers import ChatMessagePayloadSerializer
from carebridge.realtime.serializers import ConversationPayloadSerializer
from carebridge.realtime.serializers import validate_payload

if TYPE_CHECKING:  # import for type checking only
    from carebridge.realtime.auth import ConnectionIdentity
    from carebridge.realtime.rooms import RoomRegistry

logger = logging.getLogger(__name__)


class ChatRelay:
    def __init__(self, server, registry: RoomRegistry):
        self.server = server
        self.registry = registry

    def handlers(self) -> dict[str, Any]:
        return {
            "chat:join": self.join,
            "chat:leave": self.leave,
            "chat:message": self.send_message,
            "chat:typing:start": self.typing_start,
            "chat:typing:stop": self.typing_stop,
            "chat:mark_read": self.mark_read,
        }

    @property
    def backlog_size(self) -> int:
        return int(getattr(settings, "REALTIME_CHAT_BACKLOG_SIZE", 50))

    async def join(self, sid: str, identity: ConnectionIdentity, data: Any) -> None:
        payload = validate_payload(ConversationPayloadSerializer, data)
        conversation_id = str(payload["conversationId"])
        await authorize_conversation(identity, conversation_id)

        messages = await call_store(
            chat_services.recent_messages,
            conversation_id,
            self.backlog_size,
        )
        room = conversation_room(conversation_id)
        if not self.registry.is_open(sid):
            return
        await self.registry.add(sid, identity.user_id, room)

        await self.server.emit(
            "chat:messages",
            {"conversationId": conversation_id, "messages": messages},
            to=sid,
        )
        await self.server.emit(
            "chat:user_joined",
            {
                "userId": identity.user_id,
                "userRole": identity.role,
                "userProfile": identity.profile,
                "conversationId": conversation_id,
            },
            to=room,
            skip_sid=sid,
        )
        logger.debug("User %s joined %s", identity.user_id, room)

    async def leave(self, sid: str, identity: ConnectionIdentity, data: Any) -> None:
        payload = validate_payload(ConversationPayloadSerializer, data)
        conversation_id = str(payload["conversationId"])
        room = conversation_room(conversation_id)
        if not self.registry.is_member(room, sid):
            return
        # Other devices of the user keep them in the conversation
        if not await self.registry.remove(sid, identity.user_id, room):
            return
        await self.server.emit(
            "chat:user_left",
            {"userId": identity.user_id, "conversationId": conversation_id},
            to=room,
        )

    async def send_message(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        payload = validate_payload(ChatMessagePayloadSerializer, data)
        conversation_id = str(payload["conversationId"])
        await authorize_conversation(identity, conversation_id)

        message = await call_store(
            chat_services.create_message,
            conversation_id,
            sender_id=identity.user_id,
            sender_type=identity.sender_type,
            content=payload["content"],
            message_type=payload["messageType"],
        )
        room = conversation_room(conversation_id)
        # The sender's connection gets it even if it never joined the room
        await self.server.emit(
            "chat:message:new",
            {"conversationId": conversation_id, "message": message},
            to=[room, sid],
        )
        await self._notify_absent_participant(conversation_id, identity, message)

    async def _notify_absent_participant(
        self,
        conversation_id: str,
        identity: ConnectionIdentity,
        message: dict[str, Any],
    ) -> None:
        room = conversation_room(conversation_id)
        try:
            conversation = await call_store(
                chat_services.get_conversation,
                conversation_id,
            )
            recipient_id = conversation.other_participant_id(identity.user_id)
            if recipient_id is None or self.registry.user_present(room, recipient_id):
                return
            await call_store(
                chat_services.notify_new_message,
                conversation_id,
                sender_id=identity.user_id,
                message=message,
            )
        except Exception:
            # The message is already delivered; a missed notification is not
            # reported back to the sender.
            logger.exception(
                "Could not notify recipient of message %s",
                message.get("id"),
            )

    async def typing_start(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        await self._typing(sid, identity, data, started=True)

    async def typing_stop(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        await self._typing(sid, identity, data, started=False)

    async def _typing(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
        *,
        started: bool,
    ) -> None:
        payload = validate_payload(ConversationPayloadSerializer, data)
        conversation_id = str(payload["conversationId"])
        room = conversation_room(conversation_id)
        if not self.registry.is_member(room, sid):
            msg = "Join the conversation first"
            raise ProtocolMisuse(msg)

        body: dict[str, Any] = {
            "userId": identity.user_id,
            "conversationId": conversation_id,
        }
        if started:
            body["userProfile"] = identity.profile
        event = "chat:typing:start" if started else "chat:typing:stop"
        await self.server.emit(event, body, to=room, skip_sid=sid)

    async def mark_read(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        payload = validate_payload(ChatMarkReadPayloadSerializer, data)
        conversation_id = str(payload["conversationId"])
        await authorize_conversation(identity, conversation_id)

        message_id = payload.get("messageId")
        await call_store(
            chat_services.mark_messages_read,
            conversation_id,
            reader_id=identity.user_id,
            message_id=message_id,
        )
        await self.server.emit(
            "chat:message:read",
            {
                "conversationId": conversation_id,
                "messageId": str(message_id) if message_id else None,
                "readBy": identity.user_id,
            },
            to=conversation_room(conversation_id),
            skip_sid=sid,
        )
