import uuid

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Conversation(models.Model):
    class Type(models.TextChoices):
        PATIENT_PHYSICIAN = "patient_physician", _("Patient / Physician")
        AGENT_SUPPORT = "agent_support", _("Agent Support")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    conversation_type = models.CharField(
        max_length=30,
        choices=Type.choices,
        default=Type.PATIENT_PHYSICIAN,
    )
    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="patient_conversations",
    )
    physician = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="physician_conversations",
    )
    agent = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="agent_conversations",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    # Last activity; bumped on every new message
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self):
        return f"Conversation({self.pk}, {self.conversation_type})"

    def participant_ids(self) -> set[int]:
        if self.conversation_type == self.Type.AGENT_SUPPORT:
            ids = {self.patient_id, self.agent_id}
        else:
            ids = {self.patient_id, self.physician_id}
        ids.discard(None)
        return ids

    def is_participant(self, user_id: int) -> bool:
        return int(user_id) in self.participant_ids()

    def other_participant_id(self, user_id: int) -> int | None:
        others = self.participant_ids() - {int(user_id)}
        return next(iter(others), None)


class Message(models.Model):
    class Type(models.TextChoices):
        TEXT = "text", _("Text")
        IMAGE = "image", _("Image")
        FILE = "file", _("File")
        SYSTEM = "system", _("System")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
    )
    # Lower-cased sender role at the time of sending
    sender_type = models.CharField(max_length=20, blank=True)
    message_type = models.CharField(
        max_length=20,
        choices=Type.choices,
        default=Type.TEXT,
    )
    content = models.TextField()
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["conversation", "created_at"],
                name="chat_msg_conv_created_idx",
            ),
        ]

    def __str__(self):
        return f"Message({self.pk}) in {self.conversation_id}"
