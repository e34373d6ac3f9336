"""Liveness probe for load balancers and the socket gateway's deploy checks."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def check_db() -> dict[str, Any]:
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1;")
            cursor.fetchone()
    except Exception as exc:  # noqa: BLE001 - health must degrade, not crash
        logger.warning("Health check: database unavailable: %s", exc)
        return {"ok": False, "error": type(exc).__name__}
    return {"ok": True}


def check_redis() -> dict[str, Any]:
    """Redis carries the Celery broker and, when enabled, the Socket.IO bus."""

    url = getattr(settings, "REDIS_URL", None)
    if not url:
        return {"ok": False, "error": "REDIS_URL not configured"}
    try:
        redis.Redis.from_url(
            url,
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        ).ping()
    except Exception as exc:  # noqa: BLE001 - health must degrade, not crash
        logger.warning("Health check: redis unavailable: %s", exc)
        return {"ok": False, "error": type(exc).__name__}
    return {"ok": True}


def check_realtime() -> dict[str, Any]:
    from carebridge.realtime.socketio import gateway  # noqa: PLC0415

    presence = gateway.presence.get_all_presence()
    return {
        "ok": True,
        "path": settings.REALTIME_SOCKETIO_PATH,
        "shared_bus": bool(getattr(settings, "REALTIME_REDIS_MANAGER", False)),
        "online_users": sum(1 for p in presence.values() if p["connections"]),
    }


def health(request):
    components = {
        "db": check_db(),
        "redis": check_redis(),
        "realtime": check_realtime(),
    }

    all_ok = all(v.get("ok", False) for v in components.values())
    # The realtime component is in-process and always answers
    some_ok = components["db"]["ok"] or components["redis"]["ok"]

    status = "ok" if all_ok else ("degraded" if some_ok else "down")
    http_status = HTTPStatus.OK if all_ok else HTTPStatus.SERVICE_UNAVAILABLE

    return JsonResponse(
        {"status": status, "components": components},
        status=http_status,
    )
