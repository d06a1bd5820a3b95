"""
Shared fixtures for API tests.

Each test gets its own data directory, Application and TestClient. Users
are created directly through the UserService; tokens are obtained by
logging in through POST /v1/tokens.
"""

import asyncio
import tempfile

import pytest
from fastapi.testclient import TestClient

from service.versionary_server.api import create_app
from service.versionary_server.config import Settings
from service.versionary_server.entities.user import User

PASSWORD = "correct horse battery staple"


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def settings(data_dir):
    return Settings(data_dir=data_dir, sqlite_wal_mode=False, log_format="text", bcrypt_rounds=4)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def api(app):
    return app.state.api


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user(api):
    """Create an enabled User with the shared test password."""

    def make(email, roles=None, given_name=None, family_name=None, status="ENABLED"):
        user = User(
            email=email,
            password=PASSWORD,
            roles=roles,
            given_name=given_name,
            family_name=family_name,
            status=status,
        )
        return asyncio.run(api.users.create(user))

    return make


@pytest.fixture
def login(client):
    """Log in and return the Authorization header for the new token."""

    def do_login(username, password=PASSWORD):
        response = client.post("/v1/tokens", json={"username": username, "password": password})
        assert response.status_code == 201, response.text
        return {"Authorization": f"Bearer {response.json()['accessToken']}"}

    return do_login


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", roles=["admin"], given_name="Ada", family_name="Admin")


@pytest.fixture
def alice(make_user):
    return make_user("alice@example.com", given_name="Alice", family_name="Smith")


@pytest.fixture
def bob(make_user):
    return make_user("bob@example.com", given_name="Bob", family_name="Jones")


@pytest.fixture
def admin_headers(admin, login):
    return login(admin.email)


@pytest.fixture
def alice_headers(alice, login):
    return login(alice.email)


@pytest.fixture
def bob_headers(bob, login):
    return login(bob.email)
