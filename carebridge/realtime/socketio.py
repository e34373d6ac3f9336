"""Socket.IO gateway: connection lifecycle and event registration.

Every connection authenticates once in ``connect``; the resulting identity is
kept in the Socket.IO session and handed to each event handler through the
boundary in ``dispatch``. A connection always joins ``user:<id>``.
"""

from __future__ import annotations

import logging
from typing import Any

import socketio
from channels.db import database_sync_to_async

from carebridge.realtime.auth import ConnectionIdentity
from carebridge.realtime.auth import authenticate
from carebridge.realtime.auth import extract_token
from carebridge.realtime.dispatch import bind_handler
from carebridge.realtime.events.chat import ChatRelay
from carebridge.realtime.events.consultation import ConsultationRelay
from carebridge.realtime.events.notifications import NotificationFanout
from carebridge.realtime.events.presence import PresenceEvents
from carebridge.realtime.exceptions import AuthenticationFailure
from carebridge.realtime.presence import PresenceTracker
from carebridge.realtime.rooms import RoomRegistry
from carebridge.realtime.rooms import room_key
from carebridge.realtime.rooms import room_kind
from carebridge.realtime.rooms import user_room
from carebridge.realtime.server import sio

logger = logging.getLogger(__name__)


class Gateway:
    def __init__(self, server, *, presence: PresenceTracker | None = None):
        self.server = server
        self.registry = RoomRegistry(server)
        self.presence = presence or PresenceTracker()
        self.presence_events = PresenceEvents(server, self.presence, self.registry)
        self.chat = ChatRelay(server, self.registry)
        self.consultation = ConsultationRelay(server, self.registry)
        self.notifications = NotificationFanout(server)

    def handlers(self) -> dict[str, Any]:
        handlers: dict[str, Any] = {}
        for component in (
            self.chat,
            self.consultation,
            self.notifications,
            self.presence_events,
        ):
            handlers.update(component.handlers())
        return handlers

    def register(self) -> None:
        self.server.on("connect", self.connect)
        self.server.on("disconnect", self.disconnect)
        for event, func in self.handlers().items():
            self.server.on(event, bind_handler(self.server, event, func))

    async def connect(self, sid: str, environ: dict[str, Any], auth: Any = None):
        token = extract_token(environ, auth)
        try:
            identity = await database_sync_to_async(authenticate)(token)
        except AuthenticationFailure as exc:
            logger.info("Socket %s refused: %s", sid, exc.code)
            raise socketio.exceptions.ConnectionRefusedError(exc.code) from exc
        except Exception as exc:
            logger.exception("Socket.IO connect error")
            msg = "server_error"
            raise socketio.exceptions.ConnectionRefusedError(msg) from exc

        await self.server.save_session(sid, identity.as_session())
        await self.server.enter_room(sid, user_room(identity.user_id))
        self.registry.mark_open(sid)

        # Also evicts records whose grace timer was lost
        evicted = self.presence.sweep()
        if evicted:
            logger.debug("Swept stale presence for users %s", evicted)

        update = self.presence.handle_connect(identity.user_id, sid)
        await self.presence_events.broadcast(
            update,
            self.presence_events.audience(identity.user_id),
        )
        logger.debug("User %s connected as %s", identity.user_id, sid)

    async def disconnect(self, sid: str, reason: Any = None):
        identity = ConnectionIdentity.from_session(await self.server.get_session(sid))
        if identity is None:
            return
        user_id = identity.user_id

        # Presence goes out while the closing connection's rooms still count
        audience = self.presence_events.audience(user_id)
        update = self.presence.handle_disconnect(user_id, sid)
        if update is not None:
            await self.presence_events.broadcast(update, audience)

        for departure in self.registry.detach(sid, user_id):
            if not departure.last_connection:
                continue
            key = room_key(departure.room)
            try:
                if room_kind(departure.room) == "consultation":
                    await self.consultation.release(key, user_id)
                else:
                    await self.server.emit(
                        "chat:user_left",
                        {"userId": user_id, "conversationId": key},
                        to=departure.room,
                    )
            except Exception:
                logger.exception("Cleanup of %s for %s failed", departure.room, sid)
        logger.debug("User %s disconnected %s (%s)", user_id, sid, reason)


gateway = Gateway(sio)
gateway.register()

__all__ = ["Gateway", "gateway", "sio"]
