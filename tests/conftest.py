import functools
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from salesdesk.core.clock import FrozenClock
from salesdesk.core.config import Settings
from salesdesk.core.context import build_context
from salesdesk.main import create_app
from salesdesk.models.user import UserRole, UserStatus

DEFAULT_PASSWORD = "Passw0rd!"
START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret_key="test-secret-key",
        # Cheap Argon2 parameters keep the suite fast
        password_time_cost=1,
        password_memory_cost=1024,
        password_parallelism=1,
        session_sweep_interval_seconds=0,
        create_default_admin=False,
        enable_docs=False,
    )
    values.update(overrides)
    return Settings(**values)


async def create_user(
    ctx,
    code="ADV001",
    password=DEFAULT_PASSWORD,
    role=UserRole.AGENT,
    status=UserStatus.ACTIVE,
    name=None,
    email=None,
):
    return await ctx.users.create(
        code=code,
        name=name or f"Advisor {code}",
        email=email or f"{code.lower()}@example.com",
        password_hash=await ctx.passwords.hash(password),
        role=role,
        status=status,
    )


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
async def ctx(settings, clock):
    context = build_context(settings, clock)
    await context.database.create_all()
    yield context
    await context.close()


@pytest.fixture
def app(settings, clock):
    return create_app(settings, clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed(client):
    """Create users inside the app's own event loop."""
    def _seed(**kwargs):
        context = client.app.state.context
        return client.portal.call(functools.partial(create_user, context, **kwargs))
    return _seed


@pytest.fixture
def login(client):
    def _login(code="ADV001", password=DEFAULT_PASSWORD, user_agent="pytest"):
        response = client.post(
            "/api/v1/auth/login",
            json={"code": code, "password": password},
            headers={"User-Agent": user_agent},
        )
        assert response.status_code == 200, response.json()
        return response.json()["data"]
    return _login


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
