"""Internal exceptions raised inside the pipeline and converted to results by the dispatcher."""

from typing import Any, Optional

from src.shared.contact.schemas import ErrorCode


class ContactPipelineError(Exception):
    """Base class. `code` is the caller-facing error code."""
    code = ErrorCode.UNKNOWN_ERROR


class PersistenceError(ContactPipelineError):
    code = ErrorCode.PERSISTENCE_ERROR


class DocumentExistsError(PersistenceError):
    """The store already holds a document with the generated id."""


class RemoteApiError(ContactPipelineError):
    """Non-2xx response or transport failure from the remote API."""
    code = ErrorCode.NETWORK_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SubmissionTimeoutError(ContactPipelineError):
    code = ErrorCode.TIMEOUT_ERROR


class MailClientUnavailableError(ContactPipelineError):
    """The mail handoff was requested without a UI context to open it."""


class NotificationError(Exception):
    """Notification delivery failed. Never fatal to a submission."""
