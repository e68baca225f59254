"""Pytest fixtures: in-memory DB, owners, fake Gmail mailbox, fixed clock, API client."""
import base64
import os
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from jobscan.errors import MessageNotFoundError
from jobscan.gmail_service import MessageRef
from jobscan.models import Base, User

FIXED_NOW = datetime(2026, 1, 10, 12, 0, 0)


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_message(msg_id: str, subject: str, body: str = "", internal_ms: int = 1767960000000, snippet: str = "") -> dict:
    """A Gmail users.messages.get(format=full) payload with a flat text body."""
    return {
        "id": msg_id,
        "threadId": f"t-{msg_id}",
        "snippet": snippet,
        "internalDate": str(internal_ms),
        "payload": {
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": subject},
                {"name": "From", "value": "recruiting@example.com"},
            ],
            "body": {"data": b64url(body)} if body else {"size": 0},
        },
    }


class FakeMailbox:
    """In-memory stand-in for MailboxClient. ``errors[msg_id]`` is a list of exceptions raised in order."""

    def __init__(self, messages=None):
        self.messages = {m["id"]: m for m in (messages or [])}
        self.errors = {}
        self.search_errors = []
        self.search_calls = []
        self.fetch_calls = []

    def search(self, access_token, query=None, after_epoch_seconds=None):
        self.search_calls.append({"token": access_token, "after": after_epoch_seconds})
        if self.search_errors:
            raise self.search_errors.pop(0)
        return [MessageRef(id=mid) for mid in self.messages]

    def fetch(self, access_token, message_id):
        self.fetch_calls.append((access_token, message_id))
        pending = self.errors.get(message_id)
        if pending:
            raise pending.pop(0)
        if message_id not in self.messages:
            raise MessageNotFoundError(message_id)
        return self.messages[message_id]


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def owner(db):
    user = User(email="owner@example.com")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def db_urls(tmp_path):
    """
    File-based sqlite DB so sync setup code (tests, scan endpoint) and async
    request sessions see the same data.
    """
    db_path = tmp_path / "test.db"
    return f"sqlite:///{db_path}", f"sqlite+aiosqlite:///{db_path}"


@pytest.fixture
def file_session_factory(db_urls):
    sync_url, _ = db_urls
    engine = create_engine(sync_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def client(db_urls, file_session_factory):
    from jobscan.main import app
    from jobscan.database import get_db, get_sync_db

    _, async_url = db_urls
    async_engine = create_async_engine(
        async_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    AsyncSessionLocal = async_sessionmaker(async_engine, expire_on_commit=False, autoflush=False)

    async def override_get_db():
        async with AsyncSessionLocal() as session:
            yield session

    def override_get_sync_db():
        session = file_session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_db] = override_get_sync_db
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_message():
    return gmail_message


@pytest.fixture
def fake_mailbox():
    return FakeMailbox


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Scans take only the in-process owner lock unless a test installs a Redis client."""
    from jobscan.services import locks

    monkeypatch.setattr(locks, "get_redis_client", lambda: None)


class FakeRedisLock:
    def __init__(self, held):
        self.held = held
        self.acquired = False
        self.released = False

    def acquire(self, blocking=True):
        self.acquired = not self.held
        return self.acquired

    def release(self):
        self.released = True


class FakeRedis:
    """Redis client stand-in; ``held`` simulates a scan running in another process."""

    def __init__(self, held=False):
        self.held = held
        self.lock_names = []
        self.locks = []

    def lock(self, name, timeout=None):
        self.lock_names.append(name)
        lock = FakeRedisLock(self.held)
        self.locks.append(lock)
        return lock


@pytest.fixture
def fake_redis(monkeypatch):
    """Install a FakeRedis as the shared client; set ``.held = True`` to simulate another scanner."""
    from jobscan.services import locks

    client = FakeRedis()
    monkeypatch.setattr(locks, "get_redis_client", lambda: client)
    return client
