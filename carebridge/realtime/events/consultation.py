"""Consultation signaling relay.

Join, leave, start and end of one session are serialized by the room lock.
A participant's joined flag is written when their first connection enters
the room and cleared when their last connection leaves, so several devices
of one user never double count.

Offers, answers and ICE candidates are forwarded as received to the target
user's personal room. Sender and target must both be in the session room.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from channels.db import database_sync_to_async

from carebridge.consultations import services as consultation_services
from carebridge.consultations.services import InvalidTransitionError
from carebridge.consultations.tasks import settle_consultation_payment
from carebridge.realtime.dispatch import call_store
from carebridge.realtime.exceptions import AuthorizationFailure
from carebridge.realtime.exceptions import InvalidTransition
from carebridge.realtime.rooms import authorize_consultation
from carebridge.realtime.rooms import consultation_room
from carebridge.realtime.rooms import user_room
from carebridge.realtime.serializers import SessionPayloadSerializer
from carebridge.realtime.serializers import SignalPayloadSerializer
from carebridge.realtime.serializers import validate_payload
from carebridge.realtime.server import emit_event_to_room

if TYPE_CHECKING:  # import for type checking only
    from carebridge.realtime.auth import ConnectionIdentity
    from carebridge.realtime.rooms import RoomRegistry

logger = logging.getLogger(__name__)

SIGNAL_KINDS = {
    "consultation:offer": "offer",
    "consultation:answer": "answer",
    "consultation:ice-candidate": "candidate",
}


class ConsultationRelay:
    def __init__(self, server, registry: RoomRegistry):
        self.server = server
        self.registry = registry

    def handlers(self) -> dict[str, Any]:
        handlers: dict[str, Any] = {
            "consultation:join": self.join,
            "consultation:leave": self.leave,
            "consultation:start": self.start,
            "consultation:end": self.end,
        }
        for event, kind in SIGNAL_KINDS.items():
            handlers[event] = self._signal_handler(event, kind)
        return handlers

    async def join(self, sid: str, identity: ConnectionIdentity, data: Any) -> None:
        payload = validate_payload(SessionPayloadSerializer, data)
        session_id = str(payload["sessionId"])
        room = consultation_room(session_id)

        async with self.registry.lock(room):
            await authorize_consultation(identity, session_id)
            first = self.registry.would_be_first(room, identity.user_id)
            if first:
                state = await call_store(
                    consultation_services.set_participant_joined,
                    session_id,
                    identity.user_id,
                    joined=True,
                )
            else:
                state = await call_store(consultation_services.room_state, session_id)
            if not self.registry.is_open(sid):
                # Closed while the store answered; disconnect found nothing to release
                if first:
                    await call_store(
                        consultation_services.set_participant_joined,
                        session_id,
                        identity.user_id,
                        joined=False,
                    )
                return
            await self.registry.add(sid, identity.user_id, room)

        if first:
            await self.server.emit(
                "consultation:user_joined",
                {
                    "userId": identity.user_id,
                    "userRole": identity.role,
                    "userProfile": identity.profile,
                    "sessionId": session_id,
                },
                to=room,
                skip_sid=sid,
            )
        await self.server.emit("consultation:room_state", state, to=sid)

    async def leave(self, sid: str, identity: ConnectionIdentity, data: Any) -> None:
        payload = validate_payload(SessionPayloadSerializer, data)
        session_id = str(payload["sessionId"])
        room = consultation_room(session_id)

        async with self.registry.lock(room):
            if not self.registry.is_member(room, sid):
                return
            last = self.registry.would_be_last(room, sid, identity.user_id)
            if last:
                await call_store(
                    consultation_services.set_participant_joined,
                    session_id,
                    identity.user_id,
                    joined=False,
                )
            await self.registry.remove(sid, identity.user_id, room)

        if last:
            await self.server.emit(
                "consultation:user_left",
                {"userId": identity.user_id, "sessionId": session_id},
                to=room,
            )

    async def release(self, session_id: str, user_id: int) -> None:
        """Clear a participant's flag after their last connection dropped."""

        room = consultation_room(session_id)
        async with self.registry.lock(room):
            # Another connection of the user may have joined meanwhile
            if self.registry.user_present(room, user_id):
                return
            await call_store(
                consultation_services.set_participant_joined,
                session_id,
                user_id,
                joined=False,
            )
        await self.server.emit(
            "consultation:user_left",
            {"userId": user_id, "sessionId": session_id},
            to=room,
        )

    def _signal_handler(self, event: str, kind: str):
        async def relay(sid: str, identity: ConnectionIdentity, data: Any) -> None:
            await self.relay_signal(sid, identity, data, event=event, kind=kind)

        relay.__name__ = f"relay_{kind}"
        return relay

    async def relay_signal(
        self,
        sid: str,
        identity: ConnectionIdentity,
        data: Any,
        *,
        event: str,
        kind: str,
    ) -> None:
        payload = validate_payload(SignalPayloadSerializer, data, kind=kind)
        session_id = str(payload["sessionId"])
        room = consultation_room(session_id)
        if not self.registry.is_member(room, sid):
            msg = "Join the consultation first"
            raise AuthorizationFailure(msg)
        target = payload["targetUserId"]
        # Both peers joined through the participant check, so membership is enough
        if target == identity.user_id or not self.registry.user_present(room, target):
            msg = "The target user is not in this consultation"
            raise AuthorizationFailure(msg)

        await self.server.emit(
            event,
            {
                "sessionId": session_id,
                kind: payload["body"],
                "fromUserId": identity.user_id,
                "fromUserRole": identity.role,
            },
            to=user_room(target),
            skip_sid=sid,
        )

    async def _transition(self, identity: ConnectionIdentity, session_id: str, func):
        room = consultation_room(session_id)
        async with self.registry.lock(room):
            await authorize_consultation(identity, session_id)
            try:
                return await call_store(func, session_id)
            except InvalidTransitionError as exc:
                raise InvalidTransition(str(exc)) from exc

    async def start(self, sid: str, identity: ConnectionIdentity, data: Any) -> None:
        payload = validate_payload(SessionPayloadSerializer, data)
        session_id = str(payload["sessionId"])
        state = await self._transition(
            identity,
            session_id,
            consultation_services.start_session,
        )
        await self.server.emit(
            "consultation:session_started",
            {
                "sessionId": session_id,
                "startedBy": identity.user_id,
                "startedAt": state["session"]["startedAt"],
            },
            to=[consultation_room(session_id), sid],
        )

    async def end(self, sid: str, identity: ConnectionIdentity, data: Any) -> None:
        payload = validate_payload(SessionPayloadSerializer, data)
        session_id = str(payload["sessionId"])
        state = await self._transition(
            identity,
            session_id,
            consultation_services.end_session,
        )
        await self.server.emit(
            "consultation:session_ended",
            {
                "sessionId": session_id,
                "endedBy": identity.user_id,
                "endedAt": state["session"]["endedAt"],
                "durationMinutes": state["session"]["durationMinutes"],
            },
            to=[consultation_room(session_id), sid],
        )
        await self._enqueue_settlement(session_id)

    async def _enqueue_settlement(self, session_id: str) -> None:
        try:
            await database_sync_to_async(settle_consultation_payment.delay)(session_id)
        except Exception:
            # The session stays completed; settlement is retried out-of-band.
            logger.exception(
                "Could not enqueue settlement for consultation %s",
                session_id,
            )


def broadcast_consultation_update(session_id: Any, payload: dict[str, Any]) -> None:
    """Push a session change made outside the socket layer to its room."""

    emit_event_to_room(
        consultation_room(session_id),
        "consultation:update",
        {"sessionId": str(session_id), **payload},
    )
