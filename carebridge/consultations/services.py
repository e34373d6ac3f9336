"""Consultation session lifecycle.

The session moves through a guarded transition table::

    scheduled --start--> in_progress --end--> completed
    scheduled --end--> completed

``scheduled`` covers both the ``pending`` and ``ready`` phases shown to
clients; ``ready`` only means both participants are currently in the room.
Any other move raises ``InvalidTransitionError`` and changes nothing.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any

from django.db import transaction
from django.utils import timezone

from carebridge.consultations.models import ConsultationRoom
from carebridge.consultations.models import ConsultationSession
from carebridge.consultations.serializers import ConsultationRoomSerializer
from carebridge.consultations.serializers import ConsultationSessionSerializer

logger = logging.getLogger(__name__)

Status = ConsultationSession.Status

START = "start"
END = "end"

TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    START: (frozenset({Status.SCHEDULED}), Status.IN_PROGRESS),
    END: (frozenset({Status.SCHEDULED, Status.IN_PROGRESS}), Status.COMPLETED),
}


class InvalidTransitionError(ValueError):
    def __init__(self, action: str, current: str):
        self.action = action
        self.current = current
        super().__init__(f"Cannot {action} a session that is {current}")


def next_status(current: str, action: str) -> str:
    allowed, target = TRANSITIONS[action]
    if current not in allowed:
        raise InvalidTransitionError(action, current)
    return target


def compute_duration_minutes(
    ended_at: datetime,
    started_at: datetime | None,
    created_at: datetime,
) -> int:
    """Whole minutes between the baseline and ``ended_at``, floored.

    A session that never started is measured from its creation time.
    """

    baseline = started_at or created_at
    seconds = (ended_at - baseline).total_seconds()
    return max(0, math.floor(seconds / 60))


def room_phase(session: ConsultationSession, room: ConsultationRoom) -> str:
    if session.status == Status.SCHEDULED:
        if room.patient_joined and room.physician_joined:
            return "ready"
        return "pending"
    return session.status


def get_session(session_id) -> ConsultationSession:
    session = ConsultationSession.objects.filter(pk=session_id).first()
    if session is None:
        msg = "Consultation session not found"
        raise ConsultationSession.DoesNotExist(msg)
    return session


def _locked(session_id) -> tuple[ConsultationSession, ConsultationRoom]:
    session = ConsultationSession.objects.select_for_update().filter(pk=session_id).first()
    if session is None:
        msg = "Consultation session not found"
        raise ConsultationSession.DoesNotExist(msg)
    room, _ = ConsultationRoom.objects.select_for_update().get_or_create(session=session)
    return session, room


def serialize_state(session: ConsultationSession, room: ConsultationRoom) -> dict[str, Any]:
    session_data = dict(ConsultationSessionSerializer(session).data)
    session_data["phase"] = room_phase(session, room)
    return {
        "sessionId": str(session.pk),
        "session": session_data,
        "room": dict(ConsultationRoomSerializer(room).data),
    }


def room_state(session_id) -> dict[str, Any]:
    session = get_session(session_id)
    room, _ = ConsultationRoom.objects.get_or_create(session=session)
    return serialize_state(session, room)


@transaction.atomic
def set_participant_joined(session_id, user_id: int, *, joined: bool) -> dict[str, Any]:
    """Set the caller's joined flag and return the resulting room state.

    The flag is chosen by matching ``user_id`` against the session's patient
    and physician.
    """

    session, room = _locked(session_id)
    if int(user_id) == session.patient_id:
        field = "patient_joined"
    elif int(user_id) == session.physician_id:
        field = "physician_joined"
    else:
        msg = "User is not a participant of this session"
        raise ValueError(msg)

    if getattr(room, field) != joined:
        setattr(room, field, joined)
        room.save(update_fields=[field, "updated_at"])
    return serialize_state(session, room)


@transaction.atomic
def start_session(session_id, *, now: datetime | None = None) -> dict[str, Any]:
    session, room = _locked(session_id)
    session.status = next_status(session.status, START)
    session.started_at = now or timezone.now()
    session.save(update_fields=["status", "started_at", "updated_at"])

    room.room_status = ConsultationRoom.Status.ACTIVE
    room.save(update_fields=["room_status", "updated_at"])
    logger.info("Consultation %s started", session.pk)
    return serialize_state(session, room)


@transaction.atomic
def end_session(session_id, *, now: datetime | None = None) -> dict[str, Any]:
    session, room = _locked(session_id)
    session.status = next_status(session.status, END)
    session.ended_at = now or timezone.now()
    session.duration_minutes = compute_duration_minutes(
        session.ended_at,
        session.started_at,
        session.created_at,
    )
    session.save(
        update_fields=["status", "ended_at", "duration_minutes", "updated_at"],
    )

    room.room_status = ConsultationRoom.Status.COMPLETED
    room.save(update_fields=["room_status", "updated_at"])
    logger.info(
        "Consultation %s completed after %s minutes",
        session.pk,
        session.duration_minutes,
    )
    return serialize_state(session, room)
