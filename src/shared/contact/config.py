"""Contact pipeline settings loaded from environment variables."""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from src.shared.contact.schemas import SubmissionMethod

# Load environment variables from .env file (for local development)
load_dotenv()

DEFAULT_COLLECTION = "contact_submissions"
DEFAULT_NOTIFICATION_EMAIL = "support@example.com"


class ContactSettings(BaseModel):
    """Injected configuration for the pipeline. Nothing here is read at call time."""
    rate_limit_window_seconds: int = 3600
    rate_limit_max_requests: int = 5
    rate_limit_key_prefix: str = "rate_limit_"
    forbidden_words: Optional[List[str]] = None
    honeypot_field: Optional[str] = None
    honeypot_value: str = ""
    submission_method: SubmissionMethod = SubmissionMethod.STORE
    api_endpoint: Optional[str] = None
    collection: str = DEFAULT_COLLECTION
    notification_email: str = DEFAULT_NOTIFICATION_EMAIL
    send_user_copy: bool = False
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None
    cors_origins: List[str] = ["http://localhost:3000"]


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> ContactSettings:
    """Build settings from the current environment."""
    method = os.environ.get("CONTACT_SUBMISSION_METHOD", SubmissionMethod.STORE.value).strip().lower()
    try:
        submission_method = SubmissionMethod(method)
    except ValueError:
        raise ValueError(
            f"CONTACT_SUBMISSION_METHOD must be one of "
            f"{', '.join(m.value for m in SubmissionMethod)}, got {method!r}"
        )

    return ContactSettings(
        rate_limit_window_seconds=_int_env("CONTACT_RATE_LIMIT_WINDOW_SECONDS", 3600),
        rate_limit_max_requests=_int_env("CONTACT_RATE_LIMIT_MAX_REQUESTS", 5),
        forbidden_words=_split_list(os.environ.get("CONTACT_SPAM_FORBIDDEN_WORDS")),
        honeypot_field=os.environ.get("CONTACT_HONEYPOT_FIELD") or None,
        submission_method=submission_method,
        api_endpoint=os.environ.get("CONTACT_API_ENDPOINT") or None,
        collection=os.environ.get("CONTACT_COLLECTION", DEFAULT_COLLECTION),
        notification_email=(
            os.environ.get("CONTACT_NOTIFICATION_EMAIL")
            or os.environ.get("SUPPORT_EMAIL")
            or DEFAULT_NOTIFICATION_EMAIL
        ),
        send_user_copy=os.environ.get("CONTACT_SEND_USER_COPY", "false").lower() in ("1", "true", "yes"),
        smtp_host=os.environ.get("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=_int_env("SMTP_PORT", 587),
        smtp_user=os.environ.get("SMTP_USER"),
        smtp_password=os.environ.get("SMTP_PASSWORD"),
        smtp_from=os.environ.get("SMTP_FROM"),
        cors_origins=_split_list(os.environ.get("CORS_ORIGINS")) or ["http://localhost:3000"],
    )
