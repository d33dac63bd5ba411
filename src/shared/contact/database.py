"""Database setup and the SQL-backed persistence store for contact submissions."""

import asyncio
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from sqlalchemy import Column, DateTime, Index, String, Text, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from src.shared.contact.errors import DocumentExistsError, PersistenceError

# Load environment variables from .env file (for local development)
load_dotenv()

# DATABASE_URL should be set as an environment variable (e.g., from Heroku)
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError(
        "DATABASE_URL environment variable is required. "
        "Please set it to your database connection string."
    )

# Heroku uses postgres:// but SQLAlchemy 2.0+ requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine_kwargs: Dict[str, Any] = {
    "pool_pre_ping": True,  # Verify connections before using
    "pool_recycle": 3600,  # Recycle connections after 1 hour
}
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

engine = create_engine(DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class ContactSubmissionRow(Base):
    """A persisted contact form submission."""
    __tablename__ = "contact_submissions"

    id = Column(String, primary_key=True)
    collection = Column(String, nullable=False, default="contact_submissions")
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    subject = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(String, nullable=False)  # ISO-8601 as submitted
    source = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="new")  # new, read, replied, archived
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_contact_submissions_collection_created', 'collection', 'created_at'),
    )


def init_db():
    """Initialize database tables."""
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logging.info("Contact submission tables initialized successfully")
    except SQLAlchemyError as e:
        # Don't raise - store writes will surface persistence errors per request
        logging.error(f"Database initialization error: {str(e)}")


class SqlPersistenceStore:
    """PersistenceStore backed by SQLAlchemy."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or SessionLocal

    async def create_document(self, collection: str, document_id: str, fields: Dict[str, Any]) -> Dict[str, str]:
        """
        Insert a submission.

        Returns:
            {"id": document_id}

        Raises:
            DocumentExistsError if the id is already taken
            PersistenceError for any other database failure
        """
        # The session is synchronous, keep it off the event loop
        return await asyncio.to_thread(self._insert, collection, document_id, fields)

    def _insert(self, collection: str, document_id: str, fields: Dict[str, Any]) -> Dict[str, str]:
        db = self._session_factory()
        try:
            if db.get(ContactSubmissionRow, document_id) is not None:
                raise DocumentExistsError(f"Document {document_id} already exists in {collection}")

            row = ContactSubmissionRow(
                id=document_id,
                collection=collection,
                name=fields["name"],
                email=fields["email"],
                subject=fields["subject"],
                message=fields["message"],
                timestamp=fields["timestamp"],
                source=fields.get("source"),
                ip_address=fields.get("ip_address"),
                user_agent=fields.get("user_agent"),
                status=fields.get("status", "new"),
            )
            db.add(row)
            db.commit()
            return {"id": document_id}
        except IntegrityError as e:
            db.rollback()
            # Only a row inserted concurrently under the same id is a conflict
            if db.get(ContactSubmissionRow, document_id) is not None:
                raise DocumentExistsError(f"Document {document_id} already exists in {collection}") from e
            raise PersistenceError(f"Failed to write document to {collection}: {str(e)}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"Failed to write document to {collection}: {str(e)}") from e
        finally:
            db.close()
