import os
import sys
import pytest

# Ensure the backend root (containing the `wavy` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from wavy import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CLIENT_URL = 'http://localhost:5173'
    TYPING_TIME_LIMIT_SEC = 60
    TYPING_TOTAL_ROUNDS = 5
    ROOM_ID_ATTEMPTS = 5


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import wavy.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def relay(flask_app):
    return flask_app.extensions['wavy']


@pytest.fixture()
def connect(flask_app):
    """Open Socket.IO test clients; returns (client, sid) pairs."""
    opened = []

    def _connect():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        received = test_client.get_received()
        sid = next(pkt['args'][0]['socketId'] for pkt in received if pkt['name'] == 'connected')
        opened.append(test_client)
        return test_client, sid

    yield _connect
    for test_client in opened:
        if test_client.is_connected():
            test_client.disconnect()


def events_named(received, name):
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]
