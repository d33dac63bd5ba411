"""
Contact submission pipeline.

validate -> spam check -> rate limit -> submission strategy -> notification

Every failure is returned as a SubmissionResult. Nothing raised inside the
pipeline reaches the caller.
"""

import asyncio
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.shared.contact.email_utils import build_admin_notification, build_user_confirmation
from src.shared.contact.errors import (
    ContactPipelineError,
    DocumentExistsError,
    MailClientUnavailableError,
    PersistenceError,
    RemoteApiError,
    SubmissionTimeoutError,
)
from src.shared.contact.rate_limiter import RateLimiter, RateLimitStatus
from src.shared.contact.schemas import (
    DEFAULT_SOURCE,
    SUCCESS_MESSAGE,
    ContactFormConfig,
    ContactSubmission,
    ErrorCode,
    ErrorInfo,
    SubmissionMethod,
    SubmissionRecord,
    SubmissionResult,
)
from src.shared.contact.spam_detector import SpamDetectionOptions, detect_spam
from src.shared.contact.validation import ContactFormValidator
from src.shared.logs.logger import StructuredLogger, get_logger


API_TIMEOUT_SECONDS = 10.0
MAX_DOCUMENT_ID_RETRIES = 3
NOTIFICATION_ATTEMPTS = 3
CONNECTIVITY_TEST_SOURCE = "connectivity_test_do_not_save"
DEFAULT_COLLECTION = "contact_submissions"

MAIL_HANDOFF_MESSAGE = "Email client opened. Please send the email to complete your submission."
CONNECTIVITY_TEST_MESSAGE = "Connection test successful. No document was created."

# Caller-facing text per error code. Internal detail is only logged.
ERROR_MESSAGES = {
    ErrorCode.SPAM_DETECTED: "Your message could not be sent because it was flagged as spam.",
    ErrorCode.TIMEOUT_ERROR: "Request timed out. Please try again.",
    ErrorCode.NETWORK_ERROR: "We couldn't reach the submission service. Please try again later.",
    ErrorCode.PERSISTENCE_ERROR: "Failed to save your message. Please try again later.",
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred. Please try again later.",
}


def _failure(code: ErrorCode, message: Optional[str] = None, detail: Optional[Dict[str, Any]] = None) -> SubmissionResult:
    return SubmissionResult(
        success=False,
        message=message or ERROR_MESSAGES[code],
        error=ErrorInfo(code=code, detail=detail),
    )


def build_mailto_link(address: str, record: SubmissionRecord) -> str:
    """mailto: URL pre-filled with the submission."""
    subject = quote(f"Contact Form: {record.subject}", safe='')
    body = quote(
        f"Name: {record.name}\nEmail: {record.email}\n\nMessage:\n{record.message}",
        safe='',
    )
    return f"mailto:{address}?subject={subject}&body={body}"


def _created_id(created: Any) -> Optional[str]:
    if isinstance(created, Mapping):
        value = created.get("id")
    else:
        value = getattr(created, "id", None)
    return str(value) if value else None


class SubmissionDispatcher:
    """
    Runs a contact form submission through the pipeline.

    Collaborators are injected:
    - store: object with `async create_document(collection, document_id, fields) -> {"id": ...}`
    - notifier: object with `async send(NotificationMessage) -> {"message_id": ...}`
    - mail_opener: callable that opens a mailto: URL. Only a UI context has one.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        store: Any = None,
        notifier: Any = None,
        validator: Optional[ContactFormValidator] = None,
        spam_options: Optional[SpamDetectionOptions] = None,
        default_config: Optional[ContactFormConfig] = None,
        collection: str = DEFAULT_COLLECTION,
        notification_email: Optional[str] = None,
        send_user_copy: bool = False,
        http_client: Optional[httpx.AsyncClient] = None,
        mail_opener: Optional[Callable[[str], Any]] = None,
        api_timeout: float = API_TIMEOUT_SECONDS,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        notification_attempts: int = NOTIFICATION_ATTEMPTS,
        notification_wait: Optional[wait_base] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.rate_limiter = rate_limiter
        self.store = store
        self.notifier = notifier
        self.validator = validator or ContactFormValidator()
        self.spam_options = spam_options or SpamDetectionOptions()
        self.default_config = default_config or ContactFormConfig()
        self.collection = collection
        self.notification_email = notification_email
        self.send_user_copy = send_user_copy
        self.api_timeout = api_timeout
        self._http_client = http_client
        self._mail_opener = mail_opener
        self._id_factory = id_factory
        self.notification_attempts = notification_attempts
        self.notification_wait = notification_wait or wait_exponential(multiplier=1, min=2, max=10)
        self._logger = logger or get_logger("dispatcher")
        self._strategies: Dict[SubmissionMethod, Callable[[SubmissionRecord, ContactFormConfig], Awaitable[SubmissionResult]]] = {
            SubmissionMethod.API: self._submit_via_api,
            SubmissionMethod.STORE: self._submit_to_store,
            SubmissionMethod.MAIL: self._submit_via_mail,
        }

    async def submit(
        self,
        data: Union[Mapping[str, Any], BaseModel, None],
        config: Union[ContactFormConfig, Mapping[str, Any], None] = None,
    ) -> SubmissionResult:
        """
        Submit a contact form.

        Args:
            data: name, email, subject?, message, timestamp?, source?, userAgent?, ipAddress?
            config: method ("api" | "store" | "mail"), endpoint?, storeTarget?, mailAddress?

        Returns:
            SubmissionResult. Never raises.
        """
        try:
            resolved = self._resolve_config(config)
            return await self._run(data, resolved)
        except ContactPipelineError as e:
            self._logger.error("Contact form submission failed", {"code": e.code.value, "error": str(e)})
            return _failure(e.code)
        except Exception as e:
            self._logger.error(
                "Unexpected error submitting contact form",
                {"error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )
            return _failure(ErrorCode.UNKNOWN_ERROR)

    def _resolve_config(self, config: Union[ContactFormConfig, Mapping[str, Any], None]) -> ContactFormConfig:
        if config is None:
            return self.default_config
        if not isinstance(config, ContactFormConfig):
            config = ContactFormConfig.model_validate(dict(config))
        overrides = {name: getattr(config, name) for name in config.model_fields_set}
        return self.default_config.model_copy(update=overrides)

    async def _run(self, data: Any, config: ContactFormConfig) -> SubmissionResult:
        validation = self.validator.validate(data)
        if not validation.success:
            self._logger.info("Contact form validation failed", {"errors": validation.errors})
            return _failure(
                ErrorCode.VALIDATION_ERROR,
                message="Invalid form data: " + ", ".join(validation.errors.values()),
                detail={"fields": validation.errors},
            )
        submission = validation.data

        self._logger.info("Contact form submission started", {
            "method": config.method.value,
            "name": submission.name,
            "email": submission.email,
            "subject": submission.subject,
        })

        # Raw fields too, so the honeypot is visible to the detector
        raw = data.model_dump(by_alias=True) if isinstance(data, BaseModel) else dict(data)
        spam = detect_spam({**raw, **submission.model_dump()}, self.spam_options, self._logger)
        if spam.is_spam:
            self._logger.warning("Contact form rejected as spam", {
                "score": spam.score,
                "reasons": spam.reasons,
                "email": submission.email,
            })
            return _failure(ErrorCode.SPAM_DETECTED)

        keys = self._rate_limit_keys(submission)
        limited = [status for status in (self.rate_limiter.check(k) for k in keys) if status.is_limited]
        if limited:
            status = max(limited, key=lambda s: s.ms_before_next)
            self._logger.warning("Contact form rate limited", {"keys": keys, "reset_time": status.reset_time.isoformat()})
            return self._rate_limited(status)

        # A submission that cannot be delivered must not consume allowance
        self._ensure_available(config)

        for key in keys:
            self.rate_limiter.increment(key)

        record = self._build_record(submission)
        strategy = self._strategies[config.method]
        return await strategy(record, config)

    def _ensure_available(self, config: ContactFormConfig) -> None:
        """Raise if the configured strategy is missing a collaborator or setting."""
        if config.method == SubmissionMethod.STORE and self.store is None:
            raise ContactPipelineError("No persistence store configured")
        if config.method == SubmissionMethod.API and not config.endpoint:
            raise ContactPipelineError("No API endpoint configured")
        if config.method == SubmissionMethod.MAIL:
            if self._mail_opener is None:
                raise MailClientUnavailableError("Mail client handoff requires a UI context")
            if not config.mail_address:
                raise ContactPipelineError("No mail address configured")

    def _rate_limit_keys(self, submission: ContactSubmission) -> List[str]:
        keys = [f"email:{submission.email}"]
        if submission.ip_address:
            keys.append(f"ip:{submission.ip_address}")
        return keys

    def _rate_limited(self, status: RateLimitStatus) -> SubmissionResult:
        minutes = max(1, math.ceil(status.ms_before_next / 60000))
        unit = "minute" if minutes == 1 else "minutes"
        detail = status.to_dict()
        detail["retry_after_seconds"] = status.retry_after_seconds
        return _failure(
            ErrorCode.RATE_LIMITED,
            message=f"Too many submissions. Please try again in {minutes} {unit}.",
            detail=detail,
        )

    def _build_record(self, submission: ContactSubmission) -> SubmissionRecord:
        return SubmissionRecord(
            name=submission.name,
            email=submission.email,
            subject=submission.subject,
            message=submission.message,
            timestamp=submission.timestamp or datetime.now(timezone.utc).isoformat(),
            source=submission.source or DEFAULT_SOURCE,
            ip_address=submission.ip_address or "unknown",
            user_agent=submission.user_agent or "Unknown",
        )

    @retry(
        stop=stop_after_attempt(MAX_DOCUMENT_ID_RETRIES + 1),
        retry=retry_if_exception_type(DocumentExistsError),
        reraise=True
    )
    async def _write_document(self, collection: str, record: SubmissionRecord) -> str:
        """Write the record under a freshly generated id. Returns the stored id."""
        document_id = self._id_factory()
        try:
            created = await self.store.create_document(collection, document_id, record.to_document())
        except DocumentExistsError as e:
            self._logger.warning("Document ID conflict, retrying with a new id", {"error": str(e)})
            raise
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Store write failed: {str(e)}") from e
        return _created_id(created) or document_id

    async def _submit_to_store(self, record: SubmissionRecord, config: ContactFormConfig) -> SubmissionResult:
        collection = config.store_target or self.collection

        if record.source == CONNECTIVITY_TEST_SOURCE:
            self._logger.info("Test mode: Skipping actual document creation")
            return SubmissionResult(success=True, id=f"test-{uuid.uuid4().hex}", message=CONNECTIVITY_TEST_MESSAGE)

        try:
            document_id = await self._write_document(collection, record)
        except DocumentExistsError as e:
            self._logger.error("Maximum retry attempts reached for document ID conflict", {
                "error": str(e),
                "max_retries": MAX_DOCUMENT_ID_RETRIES,
            })
            raise

        saved = record.model_copy(update={"id": document_id})
        self._logger.info("Contact form submitted successfully", {
            "id": saved.id,
            "collection": collection,
            "email": saved.email,
        })

        await self._notify(saved, config)
        return SubmissionResult(success=True, id=saved.id, message=SUCCESS_MESSAGE)

    async def _notify(self, record: SubmissionRecord, config: ContactFormConfig) -> None:
        """Send notifications. Failures are logged and swallowed: the record is already saved."""
        if self.notifier is None or not self.notification_email:
            self._logger.debug("Notification skipped: no notifier configured", {"id": record.id})
            return

        messages = [build_admin_notification(record, self.notification_email)]
        send_copy = config.send_user_copy if config.send_user_copy is not None else self.send_user_copy
        if send_copy:
            messages.append(build_user_confirmation(record))

        for message in messages:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.notification_attempts),
                    wait=self.notification_wait,
                    before_sleep=lambda state: self._logger.warning("Notification email failed, retrying", {
                        "to": message.to,
                        "attempt": state.attempt_number,
                        "error": str(state.outcome.exception()),
                    }),
                    reraise=True,
                ):
                    with attempt:
                        sent = await self.notifier.send(message)
                self._logger.info("Notification email sent", {
                    "id": record.id,
                    "to": message.to,
                    "message_id": sent.get("message_id") if isinstance(sent, Mapping) else None,
                })
            except Exception as e:
                self._logger.error("Failed to send notification email", {
                    "id": record.id,
                    "to": message.to,
                    "error": str(e),
                })

    async def _submit_via_api(self, record: SubmissionRecord, config: ContactFormConfig) -> SubmissionResult:
        endpoint = config.endpoint
        self._logger.info("Submitting via API", {"endpoint": endpoint})
        if self._http_client is not None:
            response = await self._post(self._http_client, endpoint, record)
        else:
            async with httpx.AsyncClient(timeout=self.api_timeout) as client:
                response = await self._post(client, endpoint, record)

        if not response.is_success:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            self._logger.error("API error", {"status": response.status_code, "body": body})
            raise RemoteApiError(f"API error: {response.status_code}", status_code=response.status_code, body=body)

        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteApiError("API returned a non-JSON response", status_code=response.status_code) from e
        if not isinstance(payload, Mapping) or not payload.get("id"):
            raise RemoteApiError("API response is missing an id", status_code=response.status_code, body=payload)

        self._logger.info("API submission successful", {"id": payload["id"]})
        return SubmissionResult(
            success=True,
            id=str(payload["id"]),
            message=payload.get("message") or SUCCESS_MESSAGE,
        )

    async def _post(self, client: httpx.AsyncClient, endpoint: str, record: SubmissionRecord) -> httpx.Response:
        try:
            return await asyncio.wait_for(
                client.post(endpoint, json=record.to_api_payload(), timeout=self.api_timeout),
                timeout=self.api_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise SubmissionTimeoutError(f"API request to {endpoint} timed out after {self.api_timeout}s") from e
        except httpx.HTTPError as e:
            raise RemoteApiError(f"API request to {endpoint} failed: {str(e)}") from e

    async def _submit_via_mail(self, record: SubmissionRecord, config: ContactFormConfig) -> SubmissionResult:
        address = config.mail_address
        self._logger.info("Preparing email submission", {"email_address": address})
        self._mail_opener(build_mailto_link(address, record))
        self._logger.info("Email client opened")
        return SubmissionResult(success=True, message=MAIL_HANDOFF_MESSAGE)
