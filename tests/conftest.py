import os
import tempfile

# Settings are read at import time, so point them at a scratch database first.
_DB_DIR = tempfile.mkdtemp(prefix="accend-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["INITIAL_ADMIN_EMAIL"] = "admin@example.com"
os.environ["INITIAL_ADMIN_PASSWORD"] = "admin-password"

import datetime

import pytest
from fastapi.testclient import TestClient

from accend.db import Base, engine
from accend.deps import get_clock
from accend.main import app

T0 = datetime.datetime(2026, 10, 19, 9, 0, 0)
PASSWORD = "secret-pw"


class FakeClock:
    def __init__(self, start: datetime.datetime = T0):
        self.now = start

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> datetime.datetime:
        self.now += datetime.timedelta(**kwargs)
        return self.now


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


async def _drop_all() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture()
def client(clock):
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
        test_client.portal.call(_drop_all)
    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin(client):
    resp = client.post(
        "/api/auth/login",
        json={"email": "admin@example.com", "password": "admin-password"},
    )
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    body = resp.json()
    return {"id": body["user"]["id"], "headers": bearer(body["accessToken"])}


@pytest.fixture()
def make_user(client, admin):
    """Create a user through the admin API and return its id and auth headers."""

    def _make(email: str, *, role: str = "developer", access_level: int = 1, name: str | None = None):
        resp = client.post(
            "/api/users/",
            json={
                "name": name or email.split("@")[0],
                "email": email,
                "password": PASSWORD,
                "role": role,
                "accessLevel": access_level,
            },
            headers=admin["headers"],
        )
        assert resp.status_code == 201, resp.text
        login = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert login.status_code == 200, login.text
        client.cookies.clear()
        body = login.json()
        return {"id": body["user"]["id"], "headers": bearer(body["accessToken"])}

    return _make
