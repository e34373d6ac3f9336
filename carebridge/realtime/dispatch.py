"""Handler boundary shared by every inbound socket event."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import TYPE_CHECKING
from typing import Any

from channels.db import database_sync_to_async
from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.db import DatabaseError

from carebridge.realtime.auth import ConnectionIdentity
from carebridge.realtime.exceptions import AuthenticationFailure
from carebridge.realtime.exceptions import NotFound
from carebridge.realtime.exceptions import RelayError
from carebridge.realtime.exceptions import UpstreamFailure

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Awaitable
    from collections.abc import Callable

logger = logging.getLogger(__name__)

GENERIC_ERROR = {"message": "Relay error", "code": "relay_error"}


def store_timeout() -> float:
    return float(getattr(settings, "REALTIME_STORE_TIMEOUT_SECONDS", 5.0))


async def call_store(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Run a sync ORM call off the event loop, bounded by the store timeout.

    Missing rows become ``NotFound``; database errors and timeouts become
    ``UpstreamFailure``. Domain errors pass through unchanged.
    """

    name = getattr(func, "__qualname__", repr(func))
    try:
        return await asyncio.wait_for(
            database_sync_to_async(func)(*args, **kwargs),
            timeout=store_timeout(),
        )
    except TimeoutError as exc:
        logger.warning("Store call %s timed out after %ss", name, store_timeout())
        raise UpstreamFailure from exc
    except ObjectDoesNotExist as exc:
        raise NotFound(str(exc) or None) from exc
    except DatabaseError as exc:
        logger.exception("Store call %s failed", name)
        raise UpstreamFailure from exc


async def emit_error(server, sid: str, event: str, error: RelayError | None) -> None:
    if error is None:
        payload = {**GENERIC_ERROR, "event": event}
    else:
        payload = error.as_payload(event)
    await server.emit("error", payload, to=sid)


def bind_handler(
    server,
    event: str,
    func: Callable[[str, Any, Any], Awaitable[Any]],
) -> Callable[..., Awaitable[Any]]:
    """Wrap ``func(sid, identity, data)`` as a Socket.IO event handler.

    The wrapper loads the connection identity from the session and converts
    every failure into an ``error`` event for the requesting connection only.
    """

    @functools.wraps(func)
    async def handler(sid: str, *args):
        data = args[0] if args else None
        try:
            session = await server.get_session(sid)
            identity = ConnectionIdentity.from_session(session)
            if identity is None:
                raise AuthenticationFailure
            await func(sid, identity, data)
        except RelayError as exc:
            logger.info(
                "%s rejected for %s: %s (%s)",
                event,
                sid,
                exc.message,
                exc.code,
            )
            await emit_error(server, sid, event, exc)
        except Exception:
            logger.exception("Unhandled error in %s handler for %s", event, sid)
            await emit_error(server, sid, event, None)

    return handler
