"""Process-wide Socket.IO server and helpers to emit from sync Django code.

Clients connect with ``socket.io-client`` on ``settings.REALTIME_SOCKETIO_PATH``
and pass the JWT access token as ``auth.token`` (``Authorization: Bearer`` and
``?token=`` are accepted too).
"""

from __future__ import annotations

import logging
from typing import Any

import socketio
from asgiref.sync import async_to_sync
from django.conf import settings

from carebridge.realtime.rooms import role_notification_room
from carebridge.realtime.rooms import user_room

logger = logging.getLogger(__name__)


def _client_manager() -> socketio.AsyncManager | None:
    # A shared redis bus lets several ASGI processes fan out to the same rooms
    if getattr(settings, "REALTIME_REDIS_MANAGER", False):
        return socketio.AsyncRedisManager(settings.REDIS_URL)
    return None


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=getattr(settings, "REALTIME_CLIENT_ORIGINS", "*"),
    client_manager=_client_manager(),
    logger=False,
    engineio_logger=False,
)


def emit_event_to_room(
    room: str | list[str],
    event: str,
    payload: dict[str, Any],
) -> None:
    """Emit an event to a room (or several) from sync Django code."""

    async_to_sync(sio.emit)(event, payload, to=room)


def emit_event_to_user(user_id: int, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_room(user_room(user_id), event, payload)


def emit_event_to_role(role: str, event: str, payload: dict[str, Any]) -> None:
    emit_event_to_room(role_notification_room(role), event, payload)
