"""Pytest configuration and shared fixtures for testing"""

import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# The database module reads DATABASE_URL at import time
_db_dir = tempfile.mkdtemp(prefix="contact-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_db_dir, 'contact.db')}")

from src.shared.contact.errors import DocumentExistsError  # noqa: E402
from src.shared.contact.rate_limiter import RateLimiter  # noqa: E402
from src.shared.logs.logger import LogBuffer, StructuredLogger  # noqa: E402


class FakeClock:
    """Manually advanced clock for rate limiter tests"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeStore:
    """In-memory PersistenceStore recording every call"""

    def __init__(self, doc_id: str = "doc123", fail_with: Exception = None, conflicts: int = 0):
        self.doc_id = doc_id
        self.fail_with = fail_with
        self.conflicts = conflicts
        self.calls = []

    async def create_document(self, collection, document_id, fields):
        self.calls.append((collection, document_id, fields))
        if self.conflicts > 0:
            self.conflicts -= 1
            raise DocumentExistsError(f"Document {document_id} already exists")
        if self.fail_with is not None:
            raise self.fail_with
        return {"id": self.doc_id}


class FakeNotifier:
    """NotificationSink that records messages, optionally failing the first `fail_times` calls (all when None)"""

    def __init__(self, fail_with: Exception = None, fail_times: int = None):
        self.fail_with = fail_with
        self.fail_times = fail_times
        self.attempts = 0
        self.sent = []

    async def send(self, message):
        self.attempts += 1
        if self.fail_with is not None and (self.fail_times is None or self.attempts <= self.fail_times):
            raise self.fail_with
        self.sent.append(message)
        return {"message_id": f"<msg-{len(self.sent)}@test>"}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def logger() -> StructuredLogger:
    """Logger with its own buffer so tests can inspect entries"""
    return StructuredLogger(name="contact.test", buffer=LogBuffer(max_entries=1000))


@pytest.fixture
def rate_limiter(clock, logger) -> RateLimiter:
    return RateLimiter(window=timedelta(hours=1), max_requests=5, clock=clock, logger=logger)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_store():
    """Build a FakeStore with custom behaviour"""
    return FakeStore


@pytest.fixture
def make_notifier():
    """Build a FakeNotifier with custom behaviour"""
    return FakeNotifier


@pytest.fixture
def valid_submission() -> dict:
    return {
        "name": "John Doe",
        "email": "johndoe@example.com",
        "subject": "Question",
        "message": "Hello, I have a genuine question about your services.",
    }
