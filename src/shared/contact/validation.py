"""
Contact form validation.
Runs the ContactSubmission schema and collects every field error instead of
stopping at the first one.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from pydantic import BaseModel, ValidationError

from src.shared.contact.schemas import ContactSubmission, ValidationResult


FIELD_LABELS = {
    "name": "Name",
    "email": "Email",
    "subject": "Subject",
    "message": "Message",
    "timestamp": "Timestamp",
    "source": "Source",
    "user_agent": "User agent",
    "userAgent": "User agent",
    "ip_address": "IP address",
    "ipAddress": "IP address",
}

# Aliases are reported under the field name
_FIELD_NAMES = {"userAgent": "user_agent", "ipAddress": "ip_address"}


def _error_message(error: Dict[str, Any]) -> str:
    field = str(error["loc"][0]) if error.get("loc") else "form"
    label = FIELD_LABELS.get(field, field.capitalize())
    error_type = error.get("type")

    if error_type == "value_error":
        # Message raised by one of the schema validators
        return str(error["ctx"]["error"])
    if error_type == "missing":
        return f"{label} is required"
    if error_type == "string_type":
        return f"{label} must be a string"
    return f"{label} is invalid"


class ContactFormValidator:
    """Validates contact form input. Pure: no I/O and no shared state."""

    def __init__(self, blocked_domains: Optional[Iterable[str]] = None):
        self.blocked_domains = frozenset(d.lower() for d in (blocked_domains or ()))

    def validate(self, data: Any) -> ValidationResult:
        """
        Validate submitted fields.

        Args:
            data: Mapping (or pydantic model) with name, email, subject, message
                  and optional metadata

        Returns:
            ValidationResult with the normalized submission on success, or every
            violated field and its message on failure

        Raises:
            TypeError if data is None or not a mapping
        """
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        if data is None or not isinstance(data, Mapping):
            raise TypeError(f"validate() expects a mapping of form fields, got {type(data).__name__}")

        try:
            submission = ContactSubmission.model_validate(
                dict(data),
                context={"blocked_domains": self.blocked_domains},
            )
        except ValidationError as e:
            errors: Dict[str, str] = {}
            for error in e.errors():
                field = str(error["loc"][0]) if error.get("loc") else "form"
                field = _FIELD_NAMES.get(field, field)
                # Keep the first message per field
                errors.setdefault(field, _error_message(error))
            return ValidationResult(success=False, errors=errors)

        return ValidationResult(success=True, data=submission)


def validate_contact_form(data: Any, blocked_domains: Optional[Iterable[str]] = None) -> ValidationResult:
    """Validate with a one-off validator."""
    return ContactFormValidator(blocked_domains=blocked_domains).validate(data)
