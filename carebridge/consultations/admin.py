from django.contrib import admin

from carebridge.consultations import models


class ConsultationRoomInline(admin.StackedInline):
    model = models.ConsultationRoom
    can_delete = False


@admin.register(models.ConsultationSession)
class ConsultationSessionAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "patient",
        "physician",
        "status",
        "payment_status",
        "duration_minutes",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "created_at"]
    search_fields = ["patient__username", "physician__username"]
    inlines = [ConsultationRoomInline]
