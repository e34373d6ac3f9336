"""Connection authentication.

A connection presents a simplejwt access token once, at connect time. The
token is verified, its user resolved, and the user's profile must exist and
be active; anything else refuses the connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from urllib.parse import parse_qs

from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from carebridge.realtime.exceptions import AuthenticationFailure
from carebridge.users.api.serializers import profile_snapshot
from carebridge.users.models import UserProfile

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class ConnectionIdentity:
    user_id: int
    role: str
    profile: dict[str, Any] = field(default_factory=dict, compare=False)

    def as_session(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "role": self.role, "profile": self.profile}

    @classmethod
    def from_session(cls, session: Any) -> ConnectionIdentity | None:
        if not isinstance(session, dict) or session.get("user_id") is None:
            return None
        return cls(
            user_id=int(session["user_id"]),
            role=str(session.get("role") or ""),
            profile=dict(session.get("profile") or {}),
        )

    @property
    def sender_type(self) -> str:
        return self.role.lower()


def _scope(environ: dict[str, Any]) -> dict[str, Any]:
    inner = environ.get("asgi.scope") if isinstance(environ, dict) else None
    return inner if isinstance(inner, dict) else environ


def _header_token(environ: dict[str, Any]) -> str | None:
    header = environ.get("HTTP_AUTHORIZATION") if isinstance(environ, dict) else None
    if not header:
        for name, value in _scope(environ).get("headers") or ():
            if name.lower() == b"authorization":
                header = value.decode(errors="ignore")
                break
    if isinstance(header, str) and header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX) :].strip() or None
    return None


def _query_token(environ: dict[str, Any]) -> str | None:
    scope = _scope(environ)
    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(environ, dict) and "QUERY_STRING" in environ:
        query_string = environ.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    return token or None


def extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Find the bearer token: ``auth.token``, then the header, then ``?token=``."""

    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token
    return _header_token(environ) or _query_token(environ or {})


def authenticate(token: str | None) -> ConnectionIdentity:
    """Resolve a token to the identity the connection keeps for its lifetime.

    Raises ``AuthenticationFailure`` with reason ``unauthorized``,
    ``jwt_expired`` or ``inactive_profile``.
    """

    if not token:
        raise AuthenticationFailure("unauthorized")

    try:
        validated = AccessToken(token)
    except TokenError as exc:
        if "expired" in str(exc).lower():
            raise AuthenticationFailure("jwt_expired") from exc
        raise AuthenticationFailure("unauthorized") from exc

    try:
        user = JWTAuthentication().get_user(validated)
    except AuthenticationFailed as exc:  # user not found / inactive
        raise AuthenticationFailure("unauthorized") from exc

    profile = UserProfile.objects.select_related("user").filter(user=user).first()
    if profile is None or not profile.is_active:
        logger.info("Refusing socket for user %s: no active profile", user.pk)
        raise AuthenticationFailure("inactive_profile")

    return ConnectionIdentity(
        user_id=int(user.pk),
        role=profile.role,
        profile=profile_snapshot(profile),
    )
