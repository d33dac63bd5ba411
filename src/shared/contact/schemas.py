"""Pydantic schemas for the contact submission pipeline."""

from enum import Enum
from typing import Any, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


DEFAULT_SUBJECT = "Contact Form Submission"
DEFAULT_SOURCE = "website_contact_form"
SUCCESS_MESSAGE = "Form submitted successfully"

MIN_NAME_LENGTH = 2
MIN_SUBJECT_LENGTH = 3
MIN_MESSAGE_LENGTH = 10


class SubmissionMethod(str, Enum):
    """Backends able to finalize a validated submission."""
    API = "api"
    STORE = "store"
    MAIL = "mail"


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers."""
    VALIDATION_ERROR = "validation_error"
    SPAM_DETECTED = "spam_detected"
    RATE_LIMITED = "rate_limited"
    TIMEOUT_ERROR = "timeout_error"
    NETWORK_ERROR = "network_error"
    PERSISTENCE_ERROR = "persistence_error"
    UNKNOWN_ERROR = "unknown_error"


class ContactSubmission(BaseModel):
    """Schema for a contact form submission. Validated fields come back trimmed."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    email: str
    subject: Optional[str] = Field(default=None, validate_default=True)
    message: str
    timestamp: Optional[str] = None
    source: Optional[str] = None
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if len(v) < MIN_NAME_LENGTH:
            raise ValueError(f"Name must be at least {MIN_NAME_LENGTH} characters")
        return v

    @field_validator('email')
    @classmethod
    def validate_email_field(cls, v, info: ValidationInfo):
        v = v.strip()
        try:
            validate_email(v, check_deliverability=False)
        except EmailNotValidError:
            raise ValueError("Please enter a valid email address")

        blocked_domains = (info.context or {}).get("blocked_domains") or ()
        domain = v.rsplit("@", 1)[-1].lower()
        if domain in blocked_domains:
            raise ValueError("Disposable email domains are not allowed")
        return v.lower()

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, v):
        # Blank counts as absent
        if v is None or not v.strip():
            return DEFAULT_SUBJECT
        v = v.strip()
        if len(v) < MIN_SUBJECT_LENGTH:
            raise ValueError(f"Subject must be at least {MIN_SUBJECT_LENGTH} characters")
        return v

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        v = v.strip()
        if len(v) < MIN_MESSAGE_LENGTH:
            raise ValueError(f"Message must be at least {MIN_MESSAGE_LENGTH} characters")
        return v

    @field_validator('timestamp', 'source', 'user_agent', 'ip_address')
    @classmethod
    def strip_metadata(cls, v):
        if v is None:
            return None
        return v.strip() or None


class ValidationResult(BaseModel):
    """Outcome of validating a submission. `errors` maps field name to message."""
    success: bool
    data: Optional[ContactSubmission] = None
    errors: Dict[str, str] = {}


class SpamScore(BaseModel):
    is_spam: bool = False
    score: int = 0
    reasons: List[str] = []


class SubmissionRecord(BaseModel):
    """A finalized submission. Frozen once built."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    email: str
    subject: str
    message: str
    timestamp: str
    source: str
    ip_address: str
    user_agent: str

    def to_document(self) -> Dict[str, Any]:
        """Fields written to the persistence store."""
        return self.model_dump(exclude={"id"})

    def to_api_payload(self) -> Dict[str, Any]:
        """JSON body for the remote API strategy."""
        return {
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
            "timestamp": self.timestamp,
            "source": self.source,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "method": SubmissionMethod.API.value,
        }


class ContactFormConfig(BaseModel):
    """Per-call dispatch configuration."""
    model_config = ConfigDict(populate_by_name=True)

    method: SubmissionMethod = SubmissionMethod.STORE
    endpoint: Optional[str] = None
    store_target: Optional[str] = Field(default=None, alias="storeTarget")
    mail_address: Optional[str] = Field(default=None, alias="mailAddress")
    send_user_copy: Optional[bool] = Field(default=None, alias="sendUserCopy")


class ErrorInfo(BaseModel):
    code: ErrorCode
    detail: Optional[Dict[str, Any]] = None


class SubmissionResult(BaseModel):
    """Schema for the pipeline response."""
    success: bool
    id: Optional[str] = None
    message: str
    error: Optional[ErrorInfo] = None


class NotificationMessage(BaseModel):
    to: str
    subject: str
    text_body: str
    html_body: Optional[str] = None
    reply_to: Optional[str] = None
