"""Integration tests for the SQL persistence store against SQLite"""

import asyncio
import time
import uuid

import pytest

from src.shared.contact.database import ContactSubmissionRow, SessionLocal, SqlPersistenceStore, init_db
from src.shared.contact.errors import DocumentExistsError, PersistenceError


@pytest.fixture(autouse=True)
def tables():
    init_db()


@pytest.fixture
def fields():
    return {
        "name": "John Doe",
        "email": "johndoe@example.com",
        "subject": "Question",
        "message": "Hello, I have a genuine question about your services.",
        "timestamp": "2026-01-01T12:00:00+00:00",
        "source": "website_contact_form",
        "ip_address": "203.0.113.7",
        "user_agent": "Mozilla/5.0",
    }


def new_id():
    return uuid.uuid4().hex


class TestSqlPersistenceStore:
    """Test writes, id conflicts and other failures"""

    @pytest.mark.asyncio
    async def test_create_document(self, fields):
        """Test a submission is written under the given id and collection"""
        document_id = new_id()

        created = await SqlPersistenceStore().create_document("inbox", document_id, fields)

        assert created == {"id": document_id}
        db = SessionLocal()
        try:
            row = db.get(ContactSubmissionRow, document_id)
        finally:
            db.close()
        assert row.collection == "inbox"
        assert row.email == "johndoe@example.com"
        assert row.status == "new"

    @pytest.mark.asyncio
    async def test_duplicate_id(self, fields):
        """Test reusing an id is reported as a conflict"""
        store = SqlPersistenceStore()
        document_id = new_id()
        await store.create_document("inbox", document_id, fields)

        with pytest.raises(DocumentExistsError):
            await store.create_document("inbox", document_id, fields)

    @pytest.mark.asyncio
    async def test_constraint_violation_is_not_a_conflict(self, fields):
        """Test a NOT NULL violation is a plain persistence error and not retried as a conflict"""
        with pytest.raises(PersistenceError) as exc_info:
            await SqlPersistenceStore().create_document("inbox", new_id(), {**fields, "name": None})

        assert not isinstance(exc_info.value, DocumentExistsError)

    @pytest.mark.asyncio
    async def test_write_does_not_block_event_loop(self, fields):
        """Test other tasks keep running while a commit is slow"""
        def slow_session():
            db = SessionLocal()
            commit = db.commit

            def delayed_commit():
                time.sleep(0.5)
                commit()

            db.commit = delayed_commit
            return db

        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.05)
                ticks += 1

        task = asyncio.create_task(ticker())
        await SqlPersistenceStore(session_factory=slow_session).create_document("inbox", new_id(), fields)
        task.cancel()

        assert ticks >= 5
