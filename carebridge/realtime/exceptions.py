"""Errors raised inside socket handlers.

Each carries a client-safe ``message`` and a stable ``code``; the handler
boundary turns them into a scoped ``error`` event. Only authentication
failures end a connection attempt.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    default_message = "Relay error"
    code = "relay_error"

    def __init__(self, message: str | None = None, *, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_payload(self, event: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message, "code": self.code}
        if event:
            payload["event"] = event
        if self.details:
            payload["errors"] = self.details
        return payload


class AuthenticationFailure(RelayError):
    default_message = "Authentication failed"
    code = "unauthorized"

    def __init__(self, reason: str = "unauthorized", message: str | None = None):
        super().__init__(message)
        # Reason doubles as the connect refusal message
        self.code = reason


class AuthorizationFailure(RelayError):
    default_message = "Access denied"
    code = "forbidden"


class NotFound(RelayError):
    default_message = "Not found"
    code = "not_found"


class UpstreamFailure(RelayError):
    default_message = "Relay error"
    code = "upstream_failure"


class ProtocolMisuse(RelayError):
    default_message = "Invalid payload"
    code = "invalid_payload"


class InvalidTransition(RelayError):
    default_message = "Invalid session transition"
    code = "invalid_transition"
