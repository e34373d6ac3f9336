"""Celery app for out-of-band work such as consultation payment settlement."""

import os

from celery import Celery
from celery.signals import setup_logging

# pytest and manage.py set DJANGO_SETTINGS_MODULE explicitly; workers started
# from the container image fall back to production.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.production")

app = Celery("carebridge")

# Every CELERY_* Django setting configures the app (CELERY_BROKER_URL, ...)
app.config_from_object("django.conf:settings", namespace="CELERY")


@setup_logging.connect
def config_loggers(*args, **kwargs):
    from logging.config import dictConfig  # noqa: PLC0415

    from django.conf import settings  # noqa: PLC0415

    dictConfig(settings.LOGGING)


# Picks up carebridge.<app>.tasks, e.g. consultations.settle_payment
app.autodiscover_tasks()
