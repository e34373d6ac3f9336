from unittest import mock

import pytest

from carebridge.notifications import services
from carebridge.notifications.models import Notification
from carebridge.users.models import UserProfile
from tests.factories import create_user


@pytest.mark.django_db
class TestNotify:
    def test_published_to_recipient_after_commit(
        self, patient, django_capture_on_commit_callbacks
    ):
        with mock.patch(
            "carebridge.realtime.events.notifications.emit_event_to_room"
        ) as emit, django_capture_on_commit_callbacks(execute=True):
            notification = services.notify(
                patient.pk,
                title="Appointment",
                message="Tomorrow at 10:00",
                notification_type=Notification.Type.APPOINTMENT,
                data={"appointmentId": 7},
            )

        emit.assert_called_once()
        rooms, event, payload = emit.call_args.args
        assert rooms == [f"user:{patient.pk}", f"notifications:{patient.pk}"]
        assert event == "notification:new"
        assert payload["id"] == notification.pk
        assert payload["type"] == "appointment"
        assert payload["data"] == {"appointmentId": 7}
        assert payload["isRead"] is False

    def test_publish_waits_for_commit(
        self, patient, django_capture_on_commit_callbacks
    ):
        with mock.patch(
            "carebridge.realtime.events.notifications.emit_event_to_room"
        ) as emit, django_capture_on_commit_callbacks() as callbacks:
            services.notify(patient.pk, title="t", message="m")

        # Queued for commit, not sent inline
        assert len(callbacks) == 1
        emit.assert_not_called()


@pytest.mark.django_db
class TestNotifyRole:
    def test_one_row_per_active_holder(self, physician):
        other = create_user("second", role=UserProfile.Role.PHYSICIAN)
        create_user("retired", role=UserProfile.Role.PHYSICIAN, profile_active=False)
        create_user("patient", role=UserProfile.Role.PATIENT)

        created = services.notify_role(
            UserProfile.Role.PHYSICIAN,
            title="Rota",
            message="New rota published",
        )

        assert sorted(n.recipient_id for n in created) == sorted([physician.pk, other.pk])

    def test_no_holders(self):
        assert services.notify_role(UserProfile.Role.AGENT, title="t", message="m") == []


@pytest.mark.django_db
class TestMarkRead:
    def test_single(self, patient):
        first = services.notify(patient.pk, title="a", message="a")
        second = services.notify(patient.pk, title="b", message="b")

        assert services.mark_read(patient.pk, notification_id=first.pk) == 1

        first.refresh_from_db()
        second.refresh_from_db()
        assert first.is_read is True
        assert second.is_read is False

    def test_all(self, patient, physician):
        services.notify(patient.pk, title="a", message="a")
        services.notify(patient.pk, title="b", message="b")
        theirs = services.notify(physician.pk, title="c", message="c")

        assert services.mark_read(patient.pk, mark_all=True) == 2

        theirs.refresh_from_db()
        assert theirs.is_read is False

    def test_foreign_notification(self, patient, physician):
        theirs = services.notify(physician.pk, title="c", message="c")

        with pytest.raises(Notification.DoesNotExist):
            services.mark_read(patient.pk, notification_id=theirs.pk)

        theirs.refresh_from_db()
        assert theirs.is_read is False
