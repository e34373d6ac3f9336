"""Room names, live membership and participant authorization.

Room names are plain strings so they map one-to-one onto Socket.IO rooms:

- ``user:<id>``: every connection of a user, joined on connect
- ``conversation:<id>`` / ``consultation:<id>``: relay rooms, joined after the
  participant check passes
- ``notifications:<key>`` / ``notifications:role:<role>``: fan-out channels

The registry keeps its own book of relay-room members (``room -> user id ->
connection ids``) next to the transport's rooms. That book answers the
questions the transport cannot: is this the user's first or last connection
in the room, and which rooms does a departing connection leave behind.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING
from typing import Any

from carebridge.chat import services as chat_services
from carebridge.consultations import services as consultation_services
from carebridge.realtime.dispatch import call_store
from carebridge.realtime.exceptions import AuthorizationFailure

if TYPE_CHECKING:  # import for type checking only
    from carebridge.chat.models import Conversation
    from carebridge.consultations.models import ConsultationSession
    from carebridge.realtime.auth import ConnectionIdentity

logger = logging.getLogger(__name__)

CONVERSATION_PREFIX = "conversation:"
CONSULTATION_PREFIX = "consultation:"


def user_room(user_id: int) -> str:
    return f"user:{int(user_id)}"


def conversation_room(conversation_id: Any) -> str:
    return f"{CONVERSATION_PREFIX}{conversation_id}"


def consultation_room(session_id: Any) -> str:
    return f"{CONSULTATION_PREFIX}{session_id}"


def notification_room(key: Any) -> str:
    return f"notifications:{key}"


def role_notification_room(role: str) -> str:
    return f"notifications:role:{role.strip().upper()}"


def room_kind(room: str) -> str | None:
    if room.startswith(CONVERSATION_PREFIX):
        return "conversation"
    if room.startswith(CONSULTATION_PREFIX):
        return "consultation"
    return None


def room_key(room: str) -> str:
    return room.split(":", 1)[1]


@dataclass(frozen=True)
class Departure:
    """A relay room a connection left on disconnect."""

    room: str
    user_id: int
    last_connection: bool


@dataclass
class RoomLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    # Coroutines holding or waiting for the lock
    users: int = 0


class RoomRegistry:
    def __init__(self, server):
        self.server = server
        self._locks: dict[str, RoomLock] = {}
        self._members: dict[str, dict[int, set[str]]] = {}
        self._rooms_by_sid: dict[str, set[str]] = defaultdict(set)
        self._open: set[str] = set()

    @contextlib.asynccontextmanager
    async def lock(self, room: str):
        """Per-room lock serializing join/leave/start/end within the process.

        The lock only lives while some coroutine holds or waits for it, so
        rooms of finished consultations leave nothing behind.
        """

        entry = self._locks.get(room)
        if entry is None:
            entry = self._locks[room] = RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._locks[room]

    def locked_rooms(self) -> set[str]:
        return set(self._locks)

    def mark_open(self, sid: str) -> None:
        """Mark a connection as live; only live connections may join rooms."""

        self._open.add(sid)

    def is_open(self, sid: str) -> bool:
        return sid in self._open

    def is_member(self, room: str, sid: str) -> bool:
        return room in self._rooms_by_sid.get(sid, ())

    def user_present(self, room: str, user_id: int) -> bool:
        return bool(self._members.get(room, {}).get(int(user_id)))

    def connections(self, room: str, user_id: int | None = None) -> set[str]:
        members = self._members.get(room, {})
        if user_id is not None:
            return set(members.get(int(user_id), ()))
        return {sid for sids in members.values() for sid in sids}

    def rooms_of(self, sid: str) -> set[str]:
        return set(self._rooms_by_sid.get(sid, ()))

    def rooms_of_user(self, sids: set[str]) -> set[str]:
        rooms: set[str] = set()
        for sid in sids:
            rooms |= self.rooms_of(sid)
        return rooms

    def would_be_first(self, room: str, user_id: int) -> bool:
        return not self.user_present(room, user_id)

    def would_be_last(self, room: str, sid: str, user_id: int) -> bool:
        return self.connections(room, user_id) <= {sid}

    async def add(self, sid: str, user_id: int, room: str) -> bool:
        """Add a connection to a room; True when it is the user's first there."""

        users = self._members.setdefault(room, {})
        sids = users.setdefault(int(user_id), set())
        first = not sids
        sids.add(sid)
        self._rooms_by_sid[sid].add(room)
        await self.server.enter_room(sid, room)
        return first

    async def remove(self, sid: str, user_id: int, room: str) -> bool:
        """Remove a connection from a room; True when it was the user's last."""

        last = self._forget(sid, int(user_id), room)
        await self.server.leave_room(sid, room)
        return last

    def detach(self, sid: str, user_id: int) -> list[Departure]:
        """Drop every relay membership of a closed connection."""

        self._open.discard(sid)
        departures = [
            Departure(room, int(user_id), self._forget(sid, int(user_id), room))
            for room in sorted(self._rooms_by_sid.get(sid, ()))
        ]
        self._rooms_by_sid.pop(sid, None)
        return departures

    def _forget(self, sid: str, user_id: int, room: str) -> bool:
        users = self._members.get(room, {})
        sids = users.get(user_id, set())
        sids.discard(sid)
        last = not sids
        if last:
            users.pop(user_id, None)
        if not users:
            self._members.pop(room, None)
        rooms = self._rooms_by_sid.get(sid)
        if rooms is not None:
            rooms.discard(room)
        return last


async def authorize_conversation(
    identity: ConnectionIdentity,
    conversation_id: Any,
) -> Conversation:
    """Re-read the conversation and require the caller to be a participant."""

    conversation = await call_store(chat_services.get_conversation, conversation_id)
    if not conversation.is_participant(identity.user_id):
        logger.info(
            "User %s denied access to conversation %s",
            identity.user_id,
            conversation_id,
        )
        msg = "You are not a participant of this conversation"
        raise AuthorizationFailure(msg)
    return conversation


async def authorize_consultation(
    identity: ConnectionIdentity,
    session_id: Any,
) -> ConsultationSession:
    """Re-read the session and require the caller to be a participant."""

    session = await call_store(consultation_services.get_session, session_id)
    if not session.is_participant(identity.user_id):
        logger.info(
            "User %s denied access to consultation %s",
            identity.user_id,
            session_id,
        )
        msg = "You are not a participant of this consultation"
        raise AuthorizationFailure(msg)
    return session
