"""Heuristic spam scoring for contact form submissions."""

import re
from dataclasses import dataclass, field, replace
from typing import Any, List, Mapping, Optional, Pattern

from pydantic import BaseModel

from src.shared.contact.schemas import SpamScore
from src.shared.logs.logger import StructuredLogger, get_logger


SPAM_THRESHOLD = 50
HONEYPOT_SCORE = 100

DEFAULT_FORBIDDEN_WORDS = [
    'viagra', 'cialis', 'casino', 'lottery', 'prize', 'winner', 'free money',
    'buy now', 'click here', 'earn money', 'make money', 'get rich', 'weight loss',
    'diet pill', 'cheap', 'discount', 'free offer', 'limited time', 'act now',
    'satisfaction', 'guarantee', 'no risk', 'no obligation', 'no purchase',
    'congratulations', 'won', 'winning', 'selected', 'pharmacy', 'prescription',
]

URL_PATTERN = re.compile(r'https?://[^\s]+', re.IGNORECASE)

DEFAULT_SUSPICIOUS_PATTERNS = [
    re.compile(r'\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b', re.IGNORECASE),  # email
    URL_PATTERN,
    re.compile(r'\+\d{10,}'),  # international phone number
    re.compile(r'\$\d+'),  # dollar amount
    re.compile(r'\d{3}[\s-]?\d{3}[\s-]?\d{4}'),  # US phone number
]

_REPEATED_CHAR = re.compile(r'(.)\1{5,}')
_UPPERCASE = re.compile(r'[^A-Z]')
_LETTERS = re.compile(r'[^A-Za-z]')
_WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class SpamDetectionOptions:
    min_message_length: int = 10
    max_message_length: int = 5000
    max_links: int = 5
    forbidden_words: List[str] = field(default_factory=lambda: list(DEFAULT_FORBIDDEN_WORDS))
    suspicious_patterns: List[Pattern] = field(default_factory=lambda: list(DEFAULT_SUSPICIOUS_PATTERNS))
    honeypot_field: Optional[str] = None
    honeypot_value: Optional[str] = None

    def merged(self, **overrides) -> "SpamDetectionOptions":
        """Copy with the given non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _as_mapping(data: Any) -> Mapping:
    if isinstance(data, BaseModel):
        return data.model_dump()
    if data is None or not isinstance(data, Mapping):
        raise TypeError(f"detect_spam() expects a mapping of form fields, got {type(data).__name__}")
    return data


def detect_spam(
    data: Any,
    options: Optional[SpamDetectionOptions] = None,
    logger: Optional[StructuredLogger] = None,
) -> SpamScore:
    """
    Score a submission for spam.

    Every heuristic adds to the score independently. A tripped honeypot
    returns at once with a score of 100.

    Args:
        data: Mapping or model with name, email, message and optional subject
        options: Detection options (defaults when None)
        logger: Logger for detections

    Returns:
        SpamScore with is_spam set when score >= 50
    """
    opts = options or SpamDetectionOptions()
    log = logger or get_logger("spam_detector")
    fields = _as_mapping(data)

    score = 0
    reasons: List[str] = []

    if opts.honeypot_field and opts.honeypot_value is not None:
        # A missing field is None and never equals the expected value
        actual = fields.get(opts.honeypot_field)
        if actual != opts.honeypot_value:
            log.warning("Spam detected: Honeypot field triggered", {
                "field": opts.honeypot_field,
                "expected": opts.honeypot_value,
                "actual": actual,
            })
            return SpamScore(is_spam=True, score=HONEYPOT_SCORE, reasons=["Honeypot field triggered"])

    message = fields.get("message") or ""
    name = fields.get("name") or ""
    email = fields.get("email") or ""

    if len(message) < opts.min_message_length:
        score += 10
        reasons.append("Message too short")

    if len(message) > opts.max_message_length:
        score += 20
        reasons.append("Message too long")

    link_count = len(URL_PATTERN.findall(message))
    if link_count > opts.max_links:
        score += 30
        reasons.append(f"Too many links ({link_count})")

    lower_message = message.lower()
    lower_subject = (fields.get("subject") or "").lower()
    lower_name = name.lower()

    found_words = [
        word for word in opts.forbidden_words
        if word.lower() in lower_message
        or word.lower() in lower_subject
        or word.lower() in lower_name
    ]
    if found_words:
        score += 25 * len(found_words)
        reasons.append(f"Contains forbidden words: {', '.join(found_words)}")

    suspicious_count = sum(len(pattern.findall(message)) for pattern in opts.suspicious_patterns)
    if suspicious_count > 0:
        score += 15 * suspicious_count
        reasons.append(f"Contains suspicious patterns ({suspicious_count})")

    uppercase_chars = len(_UPPERCASE.sub('', message))
    total_letters = len(_LETTERS.sub('', message))
    if total_letters > 20 and uppercase_chars / total_letters > 0.5:
        score += 20
        reasons.append("Excessive capitalization")

    if _REPEATED_CHAR.search(message):
        score += 15
        reasons.append("Excessive character repetition")

    email_local_part = email.split('@')[0].lower()
    compact_name = _WHITESPACE.sub('', lower_name)
    if (len(email_local_part) > 3
            and email_local_part not in lower_name
            and compact_name not in email_local_part):
        score += 10
        reasons.append("Name and email mismatch")

    is_spam = score >= SPAM_THRESHOLD
    if is_spam:
        log.warning("Spam detected", {"score": score, "reasons": reasons, "email": email})

    return SpamScore(is_spam=is_spam, score=score, reasons=reasons)


def is_spam(data: Any, options: Optional[SpamDetectionOptions] = None, logger: Optional[StructuredLogger] = None) -> bool:
    return detect_spam(data, options, logger).is_spam
