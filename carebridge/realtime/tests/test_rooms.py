import asyncio

import pytest
from asgiref.sync import async_to_sync

from carebridge.realtime.auth import ConnectionIdentity
from carebridge.realtime.exceptions import AuthorizationFailure
from carebridge.realtime.exceptions import NotFound
from carebridge.realtime.rooms import Departure
from carebridge.realtime.rooms import RoomRegistry
from carebridge.realtime.rooms import authorize_consultation
from carebridge.realtime.rooms import authorize_conversation
from carebridge.realtime.rooms import consultation_room
from carebridge.realtime.rooms import conversation_room
from carebridge.realtime.rooms import role_notification_room
from carebridge.realtime.rooms import room_key
from carebridge.realtime.rooms import room_kind
from carebridge.realtime.rooms import user_room
from tests.factories import create_conversation
from tests.factories import create_session


def test_room_names():
    assert user_room("12") == "user:12"
    assert conversation_room("abc") == "conversation:abc"
    assert consultation_room("abc") == "consultation:abc"
    assert role_notification_room(" physician ") == "notifications:role:PHYSICIAN"


def test_room_kind_and_key():
    assert room_kind("conversation:abc") == "conversation"
    assert room_kind("consultation:abc") == "consultation"
    assert room_kind("user:1") is None
    assert room_key("consultation:abc") == "abc"


class TestRoomRegistry:
    @pytest.fixture
    def registry(self, server):
        return RoomRegistry(server)

    def test_first_and_last_connection(self, registry, server):
        room = "conversation:c1"
        assert async_to_sync(registry.add)("a", 1, room) is True
        assert async_to_sync(registry.add)("b", 1, room) is False
        assert server.members(room) == {"a", "b"}

        assert registry.would_be_last(room, "a", 1) is False
        assert async_to_sync(registry.remove)("a", 1, room) is False
        assert registry.would_be_last(room, "b", 1) is True
        assert async_to_sync(registry.remove)("b", 1, room) is True
        assert registry.would_be_first(room, 1) is True
        assert server.members(room) == set()

    def test_users_are_counted_separately(self, registry):
        room = "consultation:s1"
        async_to_sync(registry.add)("a", 1, room)

        assert registry.would_be_first(room, 2) is True
        assert async_to_sync(registry.add)("b", 2, room) is True
        assert registry.connections(room) == {"a", "b"}
        assert registry.connections(room, 2) == {"b"}

    def test_detach_reports_departures(self, registry):
        async_to_sync(registry.add)("a", 1, "conversation:c1")
        async_to_sync(registry.add)("a", 1, "consultation:s1")
        async_to_sync(registry.add)("b", 1, "consultation:s1")

        departures = registry.detach("a", 1)

        assert departures == [
            Departure("consultation:s1", 1, last_connection=False),
            Departure("conversation:c1", 1, last_connection=True),
        ]
        assert registry.rooms_of("a") == set()
        assert registry.user_present("consultation:s1", 1)
        assert not registry.user_present("conversation:c1", 1)

    def test_rooms_of_user(self, registry):
        async_to_sync(registry.add)("a", 1, "conversation:c1")
        async_to_sync(registry.add)("b", 1, "consultation:s1")

        assert registry.rooms_of_user({"a", "b"}) == {
            "conversation:c1",
            "consultation:s1",
        }

    def test_lock_serializes_one_room(self, registry):
        order = []

        async def hold(tag, room):
            async with registry.lock(room):
                order.append(f"{tag}+")
                await asyncio.sleep(0)
                order.append(f"{tag}-")

        async def run():
            await asyncio.gather(
                hold("a", "consultation:s1"),
                hold("b", "consultation:s1"),
            )

        async_to_sync(run)()

        assert order == ["a+", "a-", "b+", "b-"]

    def test_locks_of_different_rooms_interleave(self, registry):
        order = []

        async def hold(tag, room):
            async with registry.lock(room):
                order.append(f"{tag}+")
                await asyncio.sleep(0)
                order.append(f"{tag}-")

        async def run():
            await asyncio.gather(
                hold("a", "consultation:s1"),
                hold("b", "consultation:s2"),
            )

        async_to_sync(run)()

        assert order == ["a+", "b+", "a-", "b-"]

    def test_lock_is_dropped_once_released(self, registry):
        seen = []

        async def run():
            for n in range(20):
                room = consultation_room(f"s{n}")
                async with registry.lock(room):
                    seen.append(registry.locked_rooms())

        async_to_sync(run)()

        assert seen[3] == {"consultation:s3"}
        assert registry.locked_rooms() == set()

    def test_lock_released_on_error(self, registry):
        async def fail():
            async with registry.lock("consultation:s1"):
                msg = "boom"
                raise ValueError(msg)

        with pytest.raises(ValueError, match="boom"):
            async_to_sync(fail)()
        assert registry.locked_rooms() == set()

    def test_detach_closes_the_connection(self, registry):
        registry.mark_open("a")
        assert registry.is_open("a")

        registry.detach("a", 1)

        assert not registry.is_open("a")


@pytest.mark.django_db
class TestAuthorization:
    def test_conversation_participant(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        identity = ConnectionIdentity(user_id=physician.pk, role="PHYSICIAN")

        found = async_to_sync(authorize_conversation)(identity, str(conversation.pk))

        assert found.pk == conversation.pk

    def test_conversation_outsider(self, patient, physician, outsider):
        conversation = create_conversation(patient, physician=physician)
        identity = ConnectionIdentity(user_id=outsider.pk, role="PATIENT")

        with pytest.raises(AuthorizationFailure):
            async_to_sync(authorize_conversation)(identity, str(conversation.pk))

    def test_unknown_conversation(self, patient):
        identity = ConnectionIdentity(user_id=patient.pk, role="PATIENT")

        with pytest.raises(NotFound, match="Conversation not found"):
            async_to_sync(authorize_conversation)(
                identity,
                "9b2e7c43-2c55-4d6b-8a9f-0a3d2e6f1c11",
            )

    def test_consultation_outsider(self, patient, physician, outsider):
        session = create_session(patient, physician)
        identity = ConnectionIdentity(user_id=outsider.pk, role="PATIENT")

        with pytest.raises(AuthorizationFailure):
            async_to_sync(authorize_consultation)(identity, str(session.pk))
