from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class ConsultationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "carebridge.consultations"
    verbose_name = _("Consultations")

    def ready(self):
        import carebridge.consultations.signals  # noqa: F401, PLC0415
