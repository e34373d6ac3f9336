from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from carebridge.notifications import services as notification_services
from carebridge.realtime.dispatch import call_store
from carebridge.realtime.rooms import notification_room
from carebridge.realtime.rooms import role_notification_room
from carebridge.realtime.rooms import user_room
from carebridge.realtime.serializers import NotificationMarkReadPayloadSerializer
from carebridge.realtime.serializers import SubscribePayloadSerializer
from carebridge.realtime.serializers import validate_payload
from carebridge.realtime.server import emit_event_to_role
from carebridge.realtime.server import emit_event_to_room
from carebridge.realtime.server import emit_event_to_user

if TYPE_CHECKING:  # import for type checking only
    from carebridge.notifications.models import Notification
    from carebridge.realtime.auth import ConnectionIdentity

logger = logging.getLogger(__name__)


def build_notification_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.notification_type,
        "data": notification.data or {},
        "isRead": notification.is_read,
        "createdAt": notification.created_at.isoformat()
        if notification.created_at
        else None,
    }


def build_role_broadcast_payload(
    role: str,
    notification: Notification,
) -> dict[str, Any]:
    payload = build_notification_payload(notification)
    # Ids differ per recipient; clients refetch their own copy
    payload.pop("id")
    payload["role"] = role
    return payload


def publish_notification_created(notification: Notification) -> None:
    """Publish a newly created Notification to the recipient in realtime."""

    payload = build_notification_payload(notification)
    emit_event_to_room(
        [
            user_room(notification.recipient_id),
            notification_room(notification.recipient_id),
        ],
        "notification:new",
        payload,
    )


def publish_to_user(user_id: int, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_user(user_id, event, payload)


def publish_to_role(role: str, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_role(role, event, payload)


class NotificationFanout:
    def __init__(self, server):
        self.server = server

    def handlers(self) -> dict[str, Any]:
        return {
            "notifications:subscribe": self.subscribe,
            "notifications:mark_read": self.mark_read,
        }

    async def subscribe(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        payload = validate_payload(SubscribePayloadSerializer, data)
        rooms = [
            notification_room(identity.user_id),
            role_notification_room(identity.role),
        ]
        rooms.extend(notification_room(channel) for channel in payload["channels"])
        for room in rooms:
            await self.server.enter_room(sid, room)
        await self.server.emit("notifications:subscribed", {"channels": rooms}, to=sid)

    async def mark_read(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        payload = validate_payload(NotificationMarkReadPayloadSerializer, data)
        mark_all = bool(payload.get("markAllAsRead"))
        notification_id = None if mark_all else payload.get("notificationId")
        await call_store(
            notification_services.mark_read,
            identity.user_id,
            notification_id=notification_id,
            mark_all=mark_all,
        )
        await self.server.emit(
            "notifications:marked_read",
            {"notificationId": notification_id, "markAllAsRead": mark_all},
            to=sid,
        )
