from django.contrib import admin

from carebridge.notifications import models


@admin.register(models.Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ["id", "recipient", "title", "message", "notification_type"]
    search_fields = ["title", "message", "notification_type"]
    list_filter = ["notification_type", "is_read", "created_at"]
