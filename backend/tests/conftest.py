# tests/conftest.py - Shared test fixtures
# Every API test runs twice: once on the in-memory store, once on SQLite.
import os
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

os.environ["ENVIRONMENT"] = "test"
os.environ["STORAGE_BACKEND"] = "memory"

from config import Settings
from main import create_app

TEST_SECRET = "test-secret-key-for-unit-tests-only-min-32-chars"
TEST_PASSWORD = "Password123"


def make_settings(tmp_path, backend: str = "memory", **overrides) -> Settings:
    values = {
        "environment": "test",
        "storage_backend": backend,
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        "session_secret": TEST_SECRET,
        "rate_limit_max": 10000,
        "bcrypt_rounds": 4,
        "log_level": "warning",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(params=["memory", "sql"])
def backend(request):
    return request.param


@pytest.fixture
def settings(tmp_path, backend):
    return make_settings(tmp_path, backend)


@pytest_asyncio.fixture(scope="function")
async def app(settings):
    application = create_app(settings)
    await application.state.storage.init()
    yield application
    await application.state.storage.close()


@pytest_asyncio.fixture(scope="function")
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def register_user(client: AsyncClient, email: str = None, password: str = TEST_PASSWORD,
                        name: str = "Test User") -> dict:
    """Register an account and return its id, email and Bearer headers.

    The session cookie is dropped from the client so that several users can
    share one client; requests authenticate with the returned headers.
    """
    email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
    res = await client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
    assert res.status_code == 201, res.text
    token = res.cookies.get("sid")
    client.cookies.clear()
    return {
        "id": res.json()["data"]["id"],
        "email": email,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest_asyncio.fixture
async def user_a(client):
    return await register_user(client, "alice@example.com", name="Alice")


@pytest_asyncio.fixture
async def user_b(client):
    return await register_user(client, "bob@example.com", name="Bob")


def get_auth_headers(user: dict) -> dict:
    return user["headers"]
