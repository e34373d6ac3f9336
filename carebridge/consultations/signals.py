from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import ConsultationRoom
from .models import ConsultationSession


@receiver(post_save, sender=ConsultationSession)
def create_consultation_room(sender, instance, created, **kwargs):
    if created:
        ConsultationRoom.objects.get_or_create(session=instance)
