from datetime import UTC
from datetime import datetime
from datetime import timedelta

import pytest

from carebridge.chat import services
from carebridge.chat.models import Conversation
from carebridge.chat.models import Message
from carebridge.notifications.models import Notification
from carebridge.users.models import UserProfile
from tests.factories import create_conversation
from tests.factories import create_user

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.mark.django_db
class TestConversation:
    def test_patient_physician_participants(self, patient, physician, outsider):
        conversation = create_conversation(patient, physician=physician)

        assert conversation.participant_ids() == {patient.pk, physician.pk}
        assert conversation.is_participant(physician.pk)
        assert not conversation.is_participant(outsider.pk)
        assert conversation.other_participant_id(patient.pk) == physician.pk

    def test_agent_support_participants(self, patient, physician):
        agent = create_user("agent", role=UserProfile.Role.AGENT)
        conversation = create_conversation(
            patient,
            physician=physician,
            agent=agent,
            conversation_type=Conversation.Type.AGENT_SUPPORT,
        )

        assert conversation.participant_ids() == {patient.pk, agent.pk}
        assert not conversation.is_participant(physician.pk)

    def test_get_conversation_missing(self):
        with pytest.raises(Conversation.DoesNotExist, match="Conversation not found"):
            services.get_conversation("7d5c07e6-95a2-4d4e-9f7e-5cf0f1a0b7c1")


@pytest.mark.django_db
class TestMessages:
    def test_create_message_bumps_last_activity(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        Conversation.objects.filter(pk=conversation.pk).update(updated_at=T0)

        message = services.create_message(
            conversation.pk,
            sender_id=patient.pk,
            sender_type="PATIENT",
            content="Hello doctor",
        )

        conversation.refresh_from_db()
        assert conversation.updated_at > T0
        assert message["content"] == "Hello doctor"
        assert message["senderType"] == "patient"
        assert message["messageType"] == Message.Type.TEXT
        assert message["conversationId"] == str(conversation.pk)

    def test_recent_messages_oldest_first_and_limited(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        for i in range(5):
            msg = Message.objects.create(
                conversation=conversation,
                sender=patient,
                content=f"m{i}",
            )
            Message.objects.filter(pk=msg.pk).update(
                created_at=T0 + timedelta(minutes=i),
            )

        backlog = services.recent_messages(conversation.pk, limit=3)

        assert [m["content"] for m in backlog] == ["m2", "m3", "m4"]

    def test_mark_read_skips_own_messages(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        mine = Message.objects.create(conversation=conversation, sender=patient, content="a")
        theirs = Message.objects.create(
            conversation=conversation,
            sender=physician,
            content="b",
        )

        updated = services.mark_messages_read(conversation.pk, reader_id=patient.pk)

        mine.refresh_from_db()
        theirs.refresh_from_db()
        assert updated == 1
        assert mine.is_read is False
        assert theirs.is_read is True
        assert theirs.read_at is not None

    def test_mark_single_message_read(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        first = Message.objects.create(conversation=conversation, sender=physician, content="a")
        second = Message.objects.create(
            conversation=conversation,
            sender=physician,
            content="b",
        )

        services.mark_messages_read(
            conversation.pk,
            reader_id=patient.pk,
            message_id=first.pk,
        )

        first.refresh_from_db()
        second.refresh_from_db()
        assert first.is_read is True
        assert second.is_read is False

    def test_mark_unknown_message(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        with pytest.raises(Message.DoesNotExist):
            services.mark_messages_read(
                conversation.pk,
                reader_id=patient.pk,
                message_id="0f4a3c8e-2a6b-4f7e-8d11-3b8f0a9e6c21",
            )

    def test_notify_new_message_targets_other_participant(self, patient, physician):
        conversation = create_conversation(patient, physician=physician)
        message = services.create_message(
            conversation.pk,
            sender_id=patient.pk,
            sender_type="patient",
            content="x" * 150,
        )

        notification = services.notify_new_message(
            conversation.pk,
            sender_id=patient.pk,
            message=message,
        )

        assert notification.recipient_id == physician.pk
        assert notification.notification_type == Notification.Type.MESSAGE
        assert notification.message == "x" * 100 + "..."
        assert notification.data["conversationId"] == str(conversation.pk)
