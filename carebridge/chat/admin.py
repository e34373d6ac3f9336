from django.contrib import admin

from carebridge.chat import models


@admin.register(models.Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation_type", "patient", "physician", "agent", "updated_at"]
    list_filter = ["conversation_type", "created_at"]
    search_fields = ["patient__username", "physician__username", "agent__username"]


@admin.register(models.Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation", "sender", "message_type", "is_read", "created_at"]
    list_filter = ["message_type", "is_read", "created_at"]
    search_fields = ["content"]
