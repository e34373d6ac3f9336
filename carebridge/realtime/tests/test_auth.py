from datetime import timedelta

import pytest
import socketio
from asgiref.sync import async_to_sync
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken
from rest_framework_simplejwt.tokens import RefreshToken

from carebridge.realtime.auth import ConnectionIdentity
from carebridge.realtime.auth import authenticate
from carebridge.realtime.auth import extract_token
from carebridge.realtime.exceptions import AuthenticationFailure
from carebridge.users.models import UserProfile
from tests.factories import access_token_for
from tests.factories import create_user


class TestExtractToken:
    def test_auth_payload_wins(self):
        environ = {"HTTP_AUTHORIZATION": "Bearer header", "QUERY_STRING": "token=query"}
        assert extract_token(environ, {"token": "auth"}) == "auth"

    def test_wsgi_style_header(self):
        assert extract_token({"HTTP_AUTHORIZATION": "Bearer abc"}, None) == "abc"

    def test_asgi_scope_header(self):
        environ = {"asgi.scope": {"headers": [(b"authorization", b"Bearer xyz")]}}
        assert extract_token(environ, {}) == "xyz"

    def test_query_string(self):
        assert extract_token({"QUERY_STRING": "EIO=4&token=q1"}, None) == "q1"
        scope = {"asgi.scope": {"query_string": b"token=q2"}}
        assert extract_token(scope, None) == "q2"

    def test_non_bearer_header_ignored(self):
        assert extract_token({"HTTP_AUTHORIZATION": "Basic Zm9vOmJhcg=="}, None) is None

    def test_nothing(self):
        assert extract_token({}, None) is None
        assert extract_token({}, {"token": ""}) is None


@pytest.mark.django_db
class TestAuthenticate:
    def test_valid_token(self, physician):
        identity = authenticate(access_token_for(physician))

        assert identity == ConnectionIdentity(user_id=physician.pk, role="PHYSICIAN")
        assert identity.profile["userId"] == physician.pk
        assert identity.sender_type == "physician"

    def test_session_round_trip(self, patient):
        identity = authenticate(access_token_for(patient))

        restored = ConnectionIdentity.from_session(identity.as_session())

        assert restored == identity
        assert restored.profile == identity.profile

    @pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
    def test_missing_or_malformed(self, token):
        with pytest.raises(AuthenticationFailure) as excinfo:
            authenticate(token)
        assert excinfo.value.code == "unauthorized"

    def test_expired(self, patient):
        token = AccessToken.for_user(patient)
        token.set_exp(from_time=timezone.now() - timedelta(days=1))

        with pytest.raises(AuthenticationFailure) as excinfo:
            authenticate(str(token))
        assert excinfo.value.code == "jwt_expired"

    def test_refresh_token_is_not_accepted(self, patient):
        refresh = RefreshToken.for_user(patient)

        with pytest.raises(AuthenticationFailure) as excinfo:
            authenticate(str(refresh))
        assert excinfo.value.code == "unauthorized"

    def test_inactive_profile(self):
        user = create_user("suspended", profile_active=False)

        with pytest.raises(AuthenticationFailure) as excinfo:
            authenticate(access_token_for(user))
        assert excinfo.value.code == "inactive_profile"

    def test_deactivated_user(self, patient):
        token = access_token_for(patient)
        patient.is_active = False
        patient.save(update_fields=["is_active"])

        with pytest.raises(AuthenticationFailure) as excinfo:
            authenticate(token)
        assert excinfo.value.code == "unauthorized"

    def test_missing_profile(self, patient):
        token = access_token_for(patient)
        UserProfile.objects.filter(user=patient).delete()

        with pytest.raises(AuthenticationFailure) as excinfo:
            authenticate(token)
        assert excinfo.value.code == "inactive_profile"


@pytest.mark.django_db
class TestGatewayConnect:
    def test_refused_without_token(self, server, gateway):
        with pytest.raises(socketio.exceptions.ConnectionRefusedError) as excinfo:
            async_to_sync(server.connect)("s1", {}, None)

        assert excinfo.value.error_args == {"message": "unauthorized"}
        assert "s1" not in server.sessions
        assert not server.events("presence:update")

    def test_refused_with_expired_token(self, server, gateway, patient):
        token = AccessToken.for_user(patient)
        token.set_exp(from_time=timezone.now() - timedelta(days=1))

        with pytest.raises(socketio.exceptions.ConnectionRefusedError) as excinfo:
            async_to_sync(server.connect)("s1", {}, {"token": str(token)})

        assert excinfo.value.error_args == {"message": "jwt_expired"}

    def test_refused_with_inactive_profile(self, server, gateway):
        user = create_user("suspended", profile_active=False)

        with pytest.raises(socketio.exceptions.ConnectionRefusedError) as excinfo:
            async_to_sync(server.connect)("s1", {}, {"token": access_token_for(user)})

        assert excinfo.value.error_args == {"message": "inactive_profile"}

    def test_accepted_connection_joins_personal_room(self, server, connect, patient):
        connect(patient, "s1")

        assert f"user:{patient.pk}" in server.rooms("s1")
        assert server.sessions["s1"]["user_id"] == patient.pk
        assert server.sessions["s1"]["role"] == "PATIENT"

    def test_header_token(self, server, gateway, physician):
        environ = {"HTTP_AUTHORIZATION": f"Bearer {access_token_for(physician)}"}

        async_to_sync(server.connect)("s1", environ, None)

        assert server.sessions["s1"]["user_id"] == physician.pk
