import asyncio
import json
import os
import tempfile
import uuid
from typing import Optional

# Settings are read at import time, configure before importing the app
_TEST_DIR = tempfile.mkdtemp(prefix="medlink-tests-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["CACHE_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "warning"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.database import get_session_factory
from app.core.security import create_access_token
from app.main import app
from app.models import Base, User, UserRole, Patient, Nurse, Doctor
from app.services.chat.authorization import ChatIdentity
from app.services.chat.runtime import ChatRuntime

PROFILE_CLASSES = {
    UserRole.PATIENT: Patient,
    UserRole.NURSE: Nurse,
    UserRole.DOCTOR: Doctor,
}


class FakeConnection:
    """Socket stand-in recording what the server sends."""

    def __init__(self, fail_sends: bool = False):
        self.sent = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.fail_sends = fail_sends

    async def send_text(self, data: str):
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: Optional[str] = None):
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    def of_type(self, event_type: str):
        return [event for event in self.sent if event["type"] == event_type]

    @property
    def types(self):
        return [event["type"] for event in self.sent]


def make_engine():
    return create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)


async def reset_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def create_member(session_factory, role: UserRole, first_name: str = "Test") -> ChatIdentity:
    """Insert a user and, for chat roles, the matching profile row"""
    async with session_factory() as db:
        user = User(email=f"{role.value.lower()}-{uuid.uuid4().hex[:8]}@example.com", full_name=first_name, role=role)
        db.add(user)
        await db.flush()

        profile_id = None
        profile_class = PROFILE_CLASSES.get(role)
        if profile_class is not None:
            profile = profile_class(user_id=user.id, first_name=first_name, last_name="User")
            db.add(profile)
            await db.flush()
            profile_id = profile.id

        await db.commit()
        return ChatIdentity(user_id=user.id, role=role, profile_id=profile_id)


def token_for(identity: ChatIdentity) -> str:
    return create_access_token(identity.user_id, identity.role)


def auth_headers(identity: ChatIdentity) -> dict:
    return {"Authorization": f"Bearer {token_for(identity)}"}


@pytest_asyncio.fixture
async def engine():
    test_engine = make_engine()
    await reset_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def runtime():
    return ChatRuntime()


class ChatWorld:
    """Synchronous handle on the app for end-to-end tests."""

    def __init__(self, client: TestClient, session_factory):
        self.client = client
        self.session_factory = session_factory

    def member(self, role: UserRole, first_name: str = "Test") -> ChatIdentity:
        return asyncio.run(create_member(self.session_factory, role, first_name))

    def run(self, coro):
        return asyncio.run(coro)


@pytest.fixture
def world():
    test_engine = make_engine()
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    asyncio.run(reset_schema(test_engine))

    app.dependency_overrides[get_session_factory] = lambda: factory
    try:
        with TestClient(app) as client:
            yield ChatWorld(client, factory)
    finally:
        app.dependency_overrides.clear()
        asyncio.run(test_engine.dispose())
