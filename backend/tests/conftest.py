import os
import sys
import pytest

# Ensure the backend root (containing the `cityscore` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from cityscore import create_app, db, socketio
from cityscore.services.scoring.sandbox import SandboxExecutor


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SANDBOX_TIMEOUT_MS = 2000
    SANDBOX_DEBUG = False
    SANDBOX_START_METHOD = ''
    MAX_FORMULA_LINES = 1000
    MAX_FORMULA_NODES = 20000
    MAX_FORMULA_DEPTH = 100
    COMPILE_DEBOUNCE_MS = 0
    ROAD_NETWORK_PENALTY = 1
    CLUSTER_MULTIPLIERS = '{}'
    ZONE_TYPES = 'residential,commercial,industrial,park'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import cityscore.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def executor():
    # Generous budget: CI machines can be slow to fork
    return SandboxExecutor(timeout_ms=2000)
