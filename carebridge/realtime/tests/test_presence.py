from datetime import UTC
from datetime import datetime
from datetime import timedelta

import pytest

from carebridge.realtime.presence import PresenceTracker
from tests.fakes import FakeClock
from tests.fakes import FakeScheduler

T0 = datetime(2026, 6, 1, 8, 0, tzinfo=UTC)


@pytest.fixture
def clock():
    return FakeClock(T0)


@pytest.fixture
def tracker(clock, scheduler):
    return PresenceTracker(grace_seconds=300, clock=clock, scheduler=scheduler)


def test_first_connection_goes_online(tracker):
    update = tracker.handle_connect(7, "a")

    assert update.as_payload() == {
        "userId": 7,
        "status": "online",
        "lastSeen": T0.isoformat(),
    }
    assert tracker.get_presence(7)["connections"] == 1


def test_stays_online_until_last_connection_closes(tracker, clock, scheduler):
    tracker.handle_connect(7, "a")
    tracker.handle_connect(7, "b")

    clock.advance(timedelta(minutes=1))
    update = tracker.handle_disconnect(7, "a")
    assert update.status == "online"
    assert not scheduler.pending

    clock.advance(timedelta(minutes=1))
    update = tracker.handle_disconnect(7, "b")
    assert update.status == "offline"
    assert update.last_seen == T0 + timedelta(minutes=2)
    assert [t.delay for t in scheduler.pending] == [300]


def test_record_evicted_after_grace(tracker, scheduler):
    tracker.handle_connect(7, "a")
    tracker.handle_disconnect(7, "a")
    assert tracker.get_presence(7)["status"] == "offline"
    assert tracker.has_record(7)

    scheduler.fire_pending()

    assert not tracker.has_record(7)
    assert tracker.get_all_presence() == {}


def test_reconnect_inside_grace_cancels_eviction(tracker, scheduler):
    tracker.handle_connect(7, "a")
    tracker.handle_disconnect(7, "a")
    timer = scheduler.pending[0]

    update = tracker.handle_connect(7, "b")

    assert update.status == "online"
    assert timer.cancelled
    # A timer that fires anyway must not drop a live record
    timer.callback()
    assert tracker.get_presence(7)["status"] == "online"


def test_disconnect_without_record(tracker):
    assert tracker.handle_disconnect(99, "zz") is None


def test_sweep_evicts_only_expired(tracker, clock):
    tracker.handle_connect(1, "a")
    tracker.handle_disconnect(1, "a")
    clock.advance(timedelta(seconds=200))
    tracker.handle_connect(2, "b")
    tracker.handle_disconnect(2, "b")
    tracker.handle_connect(3, "c")

    evicted = tracker.sweep(T0 + timedelta(seconds=300))

    assert evicted == [1]
    assert sorted(tracker.get_all_presence()) == [2, 3]


@pytest.mark.parametrize("status", ["away", "busy", "online"])
def test_set_status(tracker, clock, status):
    tracker.handle_connect(7, "a")
    clock.advance(timedelta(seconds=30))

    update = tracker.set_status(7, status)

    assert update.status == status
    expected = (T0 + timedelta(seconds=30)).isoformat()
    assert tracker.get_presence(7)["lastSeen"] == expected


def test_set_status_rejects_offline(tracker):
    tracker.handle_connect(7, "a")

    with pytest.raises(ValueError, match="Unsupported"):
        tracker.set_status(7, "offline")


def test_set_status_for_unknown_or_disconnected_user(tracker):
    assert tracker.set_status(7, "away") is None
    tracker.handle_connect(7, "a")
    tracker.handle_disconnect(7, "a")
    assert tracker.set_status(7, "away") is None
    assert tracker.get_presence(7)["status"] == "offline"


def test_reconnect_resets_client_status(tracker):
    tracker.handle_connect(7, "a")
    tracker.set_status(7, "busy")

    assert tracker.handle_connect(7, "b").status == "online"


def test_unknown_user_reads_offline(tracker):
    assert tracker.get_presence(42) == {
        "status": "offline",
        "lastSeen": T0.isoformat(),
        "connections": 0,
    }
