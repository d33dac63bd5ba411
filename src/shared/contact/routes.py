"""Contact routes: HTTP surface over the submission pipeline."""

from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, status
from fastapi.responses import JSONResponse

from src.shared.contact.config import ContactSettings, load_settings
from src.shared.contact.database import SqlPersistenceStore
from src.shared.contact.dispatcher import SubmissionDispatcher
from src.shared.contact.email_utils import SmtpNotificationSink
from src.shared.contact.rate_limiter import RateLimiter
from src.shared.contact.schemas import ContactFormConfig, ErrorCode, SubmissionResult
from src.shared.contact.spam_detector import SpamDetectionOptions
from src.shared.logs.logger import get_logger

router = APIRouter(prefix="/api/contact", tags=["contact"])

STATUS_BY_ERROR_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.SPAM_DETECTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.TIMEOUT_ERROR: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCode.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PERSISTENCE_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.UNKNOWN_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# One pipeline per process, built from the settings at first use
_dispatcher: Optional[SubmissionDispatcher] = None


def create_dispatcher(settings: ContactSettings) -> SubmissionDispatcher:
    """Wire the pipeline and its collaborators from settings."""
    spam_options = SpamDetectionOptions().merged(
        forbidden_words=settings.forbidden_words,
        honeypot_field=settings.honeypot_field,
        honeypot_value=settings.honeypot_value if settings.honeypot_field else None,
    )
    return SubmissionDispatcher(
        rate_limiter=RateLimiter(
            window=timedelta(seconds=settings.rate_limit_window_seconds),
            max_requests=settings.rate_limit_max_requests,
            key_prefix=settings.rate_limit_key_prefix,
            logger=get_logger("rate_limiter"),
        ),
        store=SqlPersistenceStore(),
        notifier=SmtpNotificationSink(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_address=settings.smtp_from,
        ),
        spam_options=spam_options,
        default_config=ContactFormConfig(
            method=settings.submission_method,
            endpoint=settings.api_endpoint,
            store_target=settings.collection,
        ),
        collection=settings.collection,
        notification_email=settings.notification_email,
        send_user_copy=settings.send_user_copy,
        logger=get_logger("dispatcher"),
    )


def get_dispatcher() -> SubmissionDispatcher:
    """Dependency returning the process-wide dispatcher."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = create_dispatcher(load_settings())
    return _dispatcher


def get_client_ip(request: Request) -> str:
    """Get client IP address for rate limiting."""
    # Check for forwarded IP (from proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()
    # Fallback to direct connection
    return request.client.host if request.client else "unknown"


def result_response(result: SubmissionResult) -> JSONResponse:
    """Map a pipeline result to an HTTP response."""
    if result.success:
        return JSONResponse(status_code=status.HTTP_200_OK, content=result.model_dump(mode="json", exclude_none=True))

    headers = {}
    code = result.error.code if result.error else ErrorCode.UNKNOWN_ERROR
    if code == ErrorCode.RATE_LIMITED and result.error.detail:
        headers["Retry-After"] = str(result.error.detail.get("retry_after_seconds", 0))

    return JSONResponse(
        status_code=STATUS_BY_ERROR_CODE[code],
        content=result.model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


@router.post("/submit")
async def submit_contact_form(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    dispatcher: SubmissionDispatcher = Depends(get_dispatcher),
):
    """
    Submit a contact form message.

    The body is passed to the pipeline unvalidated so that every field error
    comes back in one response. Client IP and user agent come from the request
    rather than the body.
    """
    data = dict(payload)
    data["ipAddress"] = get_client_ip(request)
    data.pop("ip_address", None)
    data["userAgent"] = (request.headers.get("User-Agent") or "")[:500] or None
    data.pop("user_agent", None)

    result = await dispatcher.submit(data)
    return result_response(result)
