import pytest
from asgiref.sync import async_to_sync

from carebridge.realtime.presence import PresenceTracker
from carebridge.realtime.socketio import Gateway
from carebridge.users.models import UserProfile
from tests.factories import access_token_for
from tests.factories import create_user
from tests.fakes import FakeScheduler
from tests.fakes import FakeSocketServer


@pytest.fixture
def user(db):
    return create_user("user")


@pytest.fixture
def patient(db):
    return create_user("patient", role=UserProfile.Role.PATIENT)


@pytest.fixture
def physician(db):
    return create_user("physician", role=UserProfile.Role.PHYSICIAN)


@pytest.fixture
def outsider(db):
    return create_user("outsider", role=UserProfile.Role.PATIENT)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def server():
    return FakeSocketServer()


@pytest.fixture
def gateway(server, scheduler):
    gw = Gateway(server, presence=PresenceTracker(scheduler=scheduler))
    gw.register()
    return gw


@pytest.fixture
def connect(server, gateway):
    """Open a socket for ``user`` under ``sid`` through the gateway."""

    def _connect(user, sid):
        async_to_sync(server.connect)(sid, {}, {"token": access_token_for(user)})
        return sid

    return _connect


@pytest.fixture
def emit(server, gateway):
    """Send a client event as ``sid``."""

    def _emit(event, sid, data=None):
        async_to_sync(server.trigger)(event, sid, data)

    return _emit
