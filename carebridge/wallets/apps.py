from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class WalletsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "carebridge.wallets"
    verbose_name = _("Wallets")
