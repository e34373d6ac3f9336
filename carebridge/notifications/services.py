from __future__ import annotations

import logging
from typing import Any

from django.db import transaction

from carebridge.notifications.models import Notification
from carebridge.users.models import UserProfile

logger = logging.getLogger(__name__)


def notify(
    recipient_id: int,
    *,
    title: str,
    message: str,
    notification_type: str = Notification.Type.SYSTEM,
    data: dict[str, Any] | None = None,
) -> Notification:
    """Persist a notification; the post_save signal pushes it in realtime."""

    return Notification.objects.create(
        recipient_id=recipient_id,
        title=title,
        message=message,
        notification_type=notification_type,
        data=data or {},
    )


@transaction.atomic
def notify_role(
    role: str,
    *,
    title: str,
    message: str,
    notification_type: str = Notification.Type.SYSTEM,
    data: dict[str, Any] | None = None,
) -> list[Notification]:
    """Persist one notification per active user holding ``role``.

    Rows are bulk-inserted, so no per-user signal fires; the caller is
    expected to publish once on the role channel instead.
    """

    recipient_ids = UserProfile.objects.filter(role=role, is_active=True).values_list(
        "user_id", flat=True
    )
    created = Notification.objects.bulk_create(
        [
            Notification(
                recipient_id=rid,
                title=title,
                message=message,
                notification_type=notification_type,
                data=data or {},
            )
            for rid in sorted(recipient_ids)
        ]
    )
    logger.info("Created %s notifications for role %s", len(created), role)
    return created


@transaction.atomic
def mark_read(
    recipient_id: int,
    *,
    notification_id: int | None = None,
    mark_all: bool = False,
) -> int:
    """Mark one or all of ``recipient_id``'s notifications as read.

    A ``notification_id`` that does not belong to the recipient raises
    ``Notification.DoesNotExist``.
    """

    own = Notification.objects.filter(recipient_id=recipient_id)
    if mark_all:
        return own.filter(is_read=False).update(is_read=True)

    if not own.filter(pk=notification_id).exists():
        msg = "Notification not found"
        raise Notification.DoesNotExist(msg)
    own.filter(pk=notification_id, is_read=False).update(is_read=True)
    return 1
