"""Email notification for contact form submissions (admin notice and submitter copy)."""

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Dict, Optional

from src.shared.contact.errors import NotificationError
from src.shared.contact.schemas import NotificationMessage, SubmissionRecord


WEBSITE_NAME = "Portfolio"


def build_admin_notification(record: SubmissionRecord, recipient: str) -> NotificationMessage:
    """Notification sent to the site owner for a new submission."""
    text_body = f"""
New contact form submission:

Name: {record.name}
Email: {record.email}
Subject: {record.subject}

Message:
{record.message}

Submission ID: {record.id}
Timestamp: {record.timestamp}
Source: {record.source}
IP Address: {record.ip_address}
User Agent: {record.user_agent}

This email was sent automatically from your website contact form.
Reply directly to this email to respond to {record.name} ({record.email}).
"""

    # Escape everything submitted before it goes into markup
    e = {k: html.escape(str(v)) for k, v in record.model_dump().items()}
    html_body = f"""
<!DOCTYPE html>
<html>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2>New Contact Form Submission</h2>
    <p><strong>From:</strong> {e['name']}</p>
    <p><strong>Email:</strong> {e['email']}</p>
    <p><strong>Subject:</strong> {e['subject']}</p>
    <p><strong>Message:</strong></p>
    <p style="white-space: pre-line;">{e['message']}</p>
    <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 30px 0;">
    <p style="font-size: 12px; color: #9ca3af;">Submission ID: {e['id']}</p>
    <p style="font-size: 12px; color: #9ca3af;">Timestamp: {e['timestamp']}</p>
    <p style="font-size: 12px; color: #9ca3af;">Source: {e['source']}</p>
</body>
</html>
"""

    return NotificationMessage(
        to=recipient,
        subject=f"New Contact Form Submission: {record.subject}",
        text_body=text_body,
        html_body=html_body,
        reply_to=record.email,
    )


def build_user_confirmation(record: SubmissionRecord, website_name: str = WEBSITE_NAME) -> NotificationMessage:
    """Copy of the message sent back to the submitter."""
    text_body = f"""
Hello {record.name},

Thank you for contacting {website_name}. I have received your message and will get back to you as soon as possible.

Here's a copy of your message:

Subject: {record.subject}
Message:
{record.message}

Best regards,
{website_name}
"""
    return NotificationMessage(
        to=record.email,
        subject=f"Thank you for contacting {website_name}",
        text_body=text_body,
    )


class SmtpNotificationSink:
    """NotificationSink that sends mail over SMTP with STARTTLS."""

    def __init__(
        self,
        host: str = "smtp.gmail.com",
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_address: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_address = from_address or user
        self.timeout = timeout

    async def send(self, message: NotificationMessage) -> Dict[str, str]:
        """
        Send one message.

        Returns:
            {"message_id": ...}

        Raises:
            NotificationError if SMTP is not configured or delivery fails
        """
        if not self.user or not self.password:
            raise NotificationError("SMTP credentials not configured")

        msg = MIMEMultipart('alternative')
        msg['From'] = self.from_address
        msg['To'] = message.to
        msg['Subject'] = message.subject
        msg['Message-ID'] = make_msgid()
        if message.reply_to:
            msg['Reply-To'] = message.reply_to  # Allow replying directly to the submitter

        msg.attach(MIMEText(message.text_body, 'plain'))
        if message.html_body:
            msg.attach(MIMEText(message.html_body, 'html'))

        # smtplib blocks, keep it off the event loop
        await asyncio.to_thread(self._deliver, msg)

        logging.info(f"Notification email sent successfully to {message.to}")
        return {"message_id": msg['Message-ID']}

    def _deliver(self, msg: MIMEMultipart) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()  # Enable encryption
                server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email to {msg['To']}: {str(e)}") from e
