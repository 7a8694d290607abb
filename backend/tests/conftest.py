import os
import sys
import pytest

# Ensure the backend root (containing the `ttt_arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from ttt_arena.config import Config
from ttt_arena import create_app, socketio


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    CORS_ORIGINS = ['*']
    RULESET = 'standard'
    MAX_SYMBOLS_PER_ROLE = 3
    MOVE_TIMEOUT_MS = 30000
    ROOM_EXPIRY_MS = 3600000
    MAX_ROOM_ID_LENGTH = 50
    RATE_LIMIT_WINDOW_MS = 1000
    MAX_ACTIONS_PER_WINDOW = 5
    MAX_CHAT_LENGTH = 200
    SOCKETIO_NAMESPACE = '/'
    ENABLE_TIMERS_IN_TESTS = False


class ClassicTestConfig(TestConfig):
    RULESET = 'classic'


@pytest.fixture()
def flask_app():
    yield create_app(TestConfig)


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def coordinator(flask_app):
    return flask_app.extensions['ttt_arena']


@pytest.fixture()
def make_client(flask_app):
    """Factory for connected Socket.IO test clients with the connect ack flushed."""
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        test_client.get_received()
        clients.append(test_client)
        return test_client

    yield _make
    for test_client in clients:
        try:
            if test_client.is_connected():
                test_client.disconnect()
        except Exception:
            pass


def received(test_client, name):
    """Payloads of every `name` event received since the last call."""
    return [pkt['args'][0] for pkt in test_client.get_received() if pkt['name'] == name]


def by_name(packets, name):
    return [pkt['args'][0] for pkt in packets if pkt['name'] == name]


@pytest.fixture()
def playing_room(make_client):
    """Two players joined to room 'arena'; both inboxes flushed."""
    x = make_client()
    o = make_client()
    x.emit('joinGame', {'roomId': 'arena', 'displayName': 'Xavier'})
    o.emit('joinGame', {'roomId': 'arena', 'displayName': 'Olive'})
    x.get_received()
    o.get_received()
    return x, o
