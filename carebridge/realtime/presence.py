"""In-process presence tracking.

A user is present (``online``, ``away`` or ``busy``) while at least one of
their connections is open; ``away`` and ``busy`` are client-chosen flavours of
being online. When the last connection closes the record turns ``offline``
and is evicted after a grace period unless the user reconnects first.

State is process-local and lost on restart.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from typing import TYPE_CHECKING
from typing import Any

from django.conf import settings
from django.utils import timezone

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Callable

logger = logging.getLogger(__name__)

ONLINE = "online"
AWAY = "away"
BUSY = "busy"
OFFLINE = "offline"

CLIENT_STATUSES = (ONLINE, AWAY, BUSY)


def _loop_scheduler(delay: float, callback: Callable[[], None]):
    return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class PresenceRecord:
    user_id: int
    status: str
    last_seen: datetime
    connections: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class PresenceUpdate:
    user_id: int
    status: str
    last_seen: datetime

    def as_payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "status": self.status,
            "lastSeen": self.last_seen.isoformat(),
        }


class PresenceTracker:
    def __init__(
        self,
        *,
        grace_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
        scheduler: Callable[[float, Callable[[], None]], Any] | None = None,
    ):
        if grace_seconds is None:
            grace_seconds = getattr(settings, "REALTIME_PRESENCE_GRACE_SECONDS", 300)
        self.grace_seconds = float(grace_seconds)
        self.clock = clock or timezone.now
        self.scheduler = scheduler or _loop_scheduler
        self._records: dict[int, PresenceRecord] = {}
        self._timers: dict[int, Any] = {}

    def handle_connect(self, user_id: int, sid: str) -> PresenceUpdate:
        user_id = int(user_id)
        now = self.clock()
        record = self._records.get(user_id)
        if record is None:
            record = PresenceRecord(user_id=user_id, status=ONLINE, last_seen=now)
            self._records[user_id] = record
        self._cancel_eviction(user_id)
        record.connections.add(sid)
        record.status = ONLINE
        record.last_seen = now
        return self._update(record)

    def handle_disconnect(self, user_id: int, sid: str) -> PresenceUpdate | None:
        user_id = int(user_id)
        record = self._records.get(user_id)
        if record is None:
            return None
        record.connections.discard(sid)
        record.last_seen = self.clock()
        if not record.connections:
            record.status = OFFLINE
            self._schedule_eviction(user_id)
        return self._update(record)

    def set_status(self, user_id: int, status: str) -> PresenceUpdate | None:
        """Apply a client-chosen status; unknown or offline users are ignored."""

        if status not in CLIENT_STATUSES:
            msg = f"Unsupported presence status: {status}"
            raise ValueError(msg)
        record = self._records.get(int(user_id))
        if record is None or not record.connections:
            return None
        record.status = status
        record.last_seen = self.clock()
        return self._update(record)

    def connections(self, user_id: int) -> set[str]:
        record = self._records.get(int(user_id))
        return set(record.connections) if record else set()

    def get_presence(self, user_id: int) -> dict[str, Any]:
        record = self._records.get(int(user_id))
        if record is None:
            return {
                "status": OFFLINE,
                "lastSeen": self.clock().isoformat(),
                "connections": 0,
            }
        return {
            "status": record.status,
            "lastSeen": record.last_seen.isoformat(),
            "connections": len(record.connections),
        }

    def get_all_presence(self) -> dict[int, dict[str, Any]]:
        return {user_id: self.get_presence(user_id) for user_id in self._records}

    def has_record(self, user_id: int) -> bool:
        return int(user_id) in self._records

    def sweep(self, now: datetime | None = None) -> list[int]:
        """Evict every record that has been offline for the whole grace period."""

        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.grace_seconds)
        expired = [
            user_id
            for user_id, record in self._records.items()
            if not record.connections and record.last_seen <= cutoff
        ]
        for user_id in expired:
            self._evict(user_id)
        return expired

    def _update(self, record: PresenceRecord) -> PresenceUpdate:
        return PresenceUpdate(record.user_id, record.status, record.last_seen)

    def _schedule_eviction(self, user_id: int) -> None:
        self._cancel_eviction(user_id)
        self._timers[user_id] = self.scheduler(
            self.grace_seconds,
            lambda: self._evict(user_id),
        )

    def _cancel_eviction(self, user_id: int) -> None:
        timer = self._timers.pop(user_id, None)
        if timer is not None:
            timer.cancel()

    def _evict(self, user_id: int) -> None:
        self._timers.pop(user_id, None)
        record = self._records.get(user_id)
        # A reconnect inside the window keeps the record
        if record is None or record.connections:
            return
        del self._records[user_id]
        logger.debug("Evicted presence record for user %s", user_id)
