"""Shared fixtures: a real SQLite database per test and a controllable clock."""

from __future__ import annotations

import secrets
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from fastapi import FastAPI

from ule.api.auth import hash_session_token
from ule.config import CronSettings, DatabaseSettings, EmailSettings, SecuritySettings, Settings
from ule.db.engine import Database
from ule.main import create_app
from ule.models.user import User, UserSession

CRON_SECRET = "test-cron-secret"
ADMIN_PASSWORD = "testpass123"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="test",
        db=DatabaseSettings(database_url=f"sqlite+aiosqlite:///{tmp_path}/ule.db"),
        cron=CronSettings(cron_secret=CRON_SECRET, lock_backend="database"),
        email=EmailSettings(resend_api_key=""),
        security=SecuritySettings(admin_web_password=ADMIN_PASSWORD),
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    db = Database(settings.db)
    await db.create_all()
    yield db
    await db.dispose()


async def create_user(database: Database, email: str | None = None) -> uuid.UUID:
    async with database.session() as db:
        user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.co", nombre="Usuario Prueba")
        db.add(user)
        await db.flush()
        return user.id


async def create_session(database: Database, user_id: uuid.UUID, valid_for: timedelta = timedelta(days=1)) -> str:
    """Create a live session for `user_id` and return its raw token."""
    token = secrets.token_urlsafe(32)
    async with database.session() as db:
        db.add(
            UserSession(
                user_id=user_id,
                token_hash=hash_session_token(token),
                expires_at=datetime.now(UTC) + valid_for,
            )
        )
    return token


@pytest.fixture
async def app(settings: Settings, clock: FakeClock) -> AsyncGenerator[FastAPI, None]:
    """App wired to the test database; tables created without running the lifespan."""
    application = create_app(settings, clock=clock)
    await application.state.database.create_all()
    yield application
    await application.state.database.dispose()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
