import functools

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from carebridge.realtime.events.notifications import publish_notification_created

from .models import Notification


@receiver(post_save, sender=Notification)
def publish_on_create(sender, instance, created, **kwargs):
    # Rolled-back rows never reach a socket
    if not created:
        return
    transaction.on_commit(functools.partial(publish_notification_created, instance))
