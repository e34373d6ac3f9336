from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings

from carebridge.realtime.rooms import user_room
from carebridge.realtime.serializers import PresenceQueryPayloadSerializer
from carebridge.realtime.serializers import PresenceStatusPayloadSerializer
from carebridge.realtime.serializers import validate_payload

if TYPE_CHECKING:  # import for type checking only
    from carebridge.realtime.auth import ConnectionIdentity
    from carebridge.realtime.presence import PresenceTracker
    from carebridge.realtime.presence import PresenceUpdate
    from carebridge.realtime.rooms import RoomRegistry

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"


class PresenceEvents:
    def __init__(self, server, tracker: PresenceTracker, registry: RoomRegistry):
        self.server = server
        self.tracker = tracker
        self.registry = registry

    def handlers(self) -> dict[str, Any]:
        return {
            "presence:status": self.set_status,
            "presence:get": self.get_presence,
        }

    @property
    def scope(self) -> str:
        return getattr(settings, "REALTIME_PRESENCE_SCOPE", "shared_rooms")

    def audience(self, user_id: int) -> list[str] | None:
        """Rooms that hear about ``user_id``; None means every connection.

        With shared-room scoping that is the user's own room plus every relay
        room one of their connections is in.
        """

        if self.scope == GLOBAL_SCOPE:
            return None
        rooms = self.registry.rooms_of_user(self.tracker.connections(user_id))
        return [user_room(user_id), *sorted(rooms)]

    async def broadcast(
        self,
        update: PresenceUpdate,
        audience: list[str] | None,
    ) -> None:
        await self.server.emit("presence:update", update.as_payload(), to=audience)

    async def set_status(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        payload = validate_payload(PresenceStatusPayloadSerializer, data)
        update = self.tracker.set_status(identity.user_id, payload["status"])
        if update is None:
            return
        await self.broadcast(update, self.audience(identity.user_id))

    async def get_presence(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
    ) -> None:
        payload = validate_payload(PresenceQueryPayloadSerializer, data)
        presence = {
            str(user_id): {
                key: value
                for key, value in self.tracker.get_presence(user_id).items()
                if key != "connections"
            }
            for user_id in payload["userIds"]
        }
        await self.server.emit("presence:state", {"presence": presence}, to=sid)
