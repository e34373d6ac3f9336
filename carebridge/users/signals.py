from __future__ import annotations

from django.contrib.auth import get_user_model
from django.db.models.signals import post_save
from django.dispatch import receiver

from carebridge.users.models import UserProfile


@receiver(post_save, sender=get_user_model())
def ensure_user_profile(sender, instance, created, **kwargs):
    """Give every newly created user a profile with the default role.

    Superusers get the ADMIN role. Safe to call repeatedly.
    """

    if not created:
        return

    role = UserProfile.Role.ADMIN if instance.is_superuser else UserProfile.Role.PATIENT
    UserProfile.objects.get_or_create(user=instance, defaults={"role": role})
