import os
import sys
from pathlib import Path

os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api import create_app  # noqa: E402
from utils.security import hash_password  # noqa: E402
from utils.sessions import DeviceContext  # noqa: E402

PASSWORD = "Password123!"
UA_DESKTOP = "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0"
UA_PHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Safari/604.1"


def build_app(**overrides):
    return create_app("test", **overrides)


@pytest.fixture
def app():
    app = build_app()
    yield app
    app.extensions["storage"].dispose()


@pytest.fixture
def strict_app():
    app = build_app(SESSION_VALIDATION="strict")
    yield app
    app.extensions["storage"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    return app.extensions["users"]


@pytest.fixture
def sessions(app):
    return app.extensions["sessions"]


@pytest.fixture
def make_user():
    """Factory: make_user(app, email=..., role=..., status=...) -> User."""
    def _make(app, email="user@example.com", password=PASSWORD, role="outbound", status="active", name="Test User"):
        return app.extensions["users"].create(
            email=email,
            password_hash=hash_password(app.extensions["password_hasher"], password),
            name=name,
            role=role,
            status=status,
        )
    return _make


@pytest.fixture
def desktop():
    return DeviceContext(user_agent=UA_DESKTOP, ip_address="203.0.113.17")


def login(client, email="user@example.com", password=PASSWORD, **kwargs):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password}, **kwargs)


def set_cookie_names(response):
    return [header.split("=", 1)[0] for header in response.headers.getlist("Set-Cookie")]


def set_cookie_value(response, name):
    for header in response.headers.getlist("Set-Cookie"):
        key, _, rest = header.partition("=")
        if key == name:
            return rest.split(";", 1)[0]
    return None
