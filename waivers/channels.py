"""
Email delivery channels.

Two implementations of the same interface:
- SendGridEmailChannel: the real delivery client, used by the deployed function
- RecordingEmailChannel: logs and records sends, used by tests and the emulator

Design decisions:
- The API credential is injected at construction and read-only afterwards
- `is_configured()` tells the handler whether sending is possible at all
- Delivery failures raise DeliveryError carrying the provider's error body,
  so the caller can log it and re-raise to the hosting framework
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment,
    Cc,
    Disposition,
    FileContent,
    FileName,
    FileType,
    Mail,
)

from waivers.models import EmailMessage

logger = logging.getLogger("notifications")


class DeliveryError(Exception):
    """
    The delivery service rejected the message or could not be reached.

    Attributes:
        status_code: HTTP status returned by the provider, if any
        detail: Structured error body from the provider (parsed JSON when possible)
    """

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


@dataclass
class DeliveryResult:
    """Successful hand-off of a message to the delivery service."""
    success: bool
    recipient: str
    subject: str
    status_code: Optional[int] = None
    message_id: Optional[str] = None
    message: Optional[EmailMessage] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} EMAIL to {self.recipient}: {self.subject}"


class EmailChannel:
    """Interface for email delivery clients."""

    def is_configured(self) -> bool:
        raise NotImplementedError

    def send(self, message: EmailMessage) -> DeliveryResult:
        raise NotImplementedError


# =============================================================================
# SendGrid
# =============================================================================

def build_sendgrid_mail(message: EmailMessage) -> Mail:
    """Translate an EmailMessage into a SendGrid Mail object."""
    mail = Mail(
        from_email=message.from_email,
        to_emails=message.to,
        subject=message.subject,
        plain_text_content=message.text,
    )
    if message.cc:
        mail.add_cc(Cc(message.cc))
    for attachment in message.attachments:
        mail.add_attachment(
            Attachment(
                FileContent(attachment.content),
                FileName(attachment.filename),
                FileType(attachment.type),
                Disposition(attachment.disposition),
            )
        )
    return mail


def _error_detail(exc: HTTPError) -> Any:
    try:
        return exc.to_dict
    except ValueError:
        body = exc.body
        return body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body


class SendGridEmailChannel(EmailChannel):
    """
    SendGrid delivery client.

    One request per message. No retries here: a failure is raised and the
    hosting trigger framework decides whether to run the invocation again.
    """

    def __init__(self, api_key: Optional[str], client: Optional[SendGridAPIClient] = None):
        """
        Args:
            api_key: SendGrid API key. When empty the channel reports itself
                     unconfigured and never contacts SendGrid.
            client: Pre-built client (for tests)
        """
        self._api_key = api_key
        self._client = client

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> SendGridAPIClient:
        if self._client is None:
            self._client = SendGridAPIClient(api_key=self._api_key)
        return self._client

    def send(self, message: EmailMessage) -> DeliveryResult:
        """
        Send a message through SendGrid.

        Returns:
            DeliveryResult with the provider's message id

        Raises:
            DeliveryError: On a non-2xx response or HTTP error from SendGrid
        """
        if not self.is_configured():
            raise DeliveryError("SendGrid API key not configured")

        mail = build_sendgrid_mail(message)
        try:
            response = self._get_client().send(mail)
        except HTTPError as exc:
            detail = _error_detail(exc)
            logger.error(f"SendGrid error response: {detail}")
            raise DeliveryError(
                f"SendGrid rejected message to {message.to}: {exc.status_code}",
                status_code=exc.status_code,
                detail=detail,
            ) from exc

        if response.status_code not in (200, 201, 202):
            body = response.body
            detail = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
            logger.error(f"SendGrid error response: {detail}")
            raise DeliveryError(
                f"SendGrid returned status {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )

        message_id = response.headers.get("X-Message-Id", "") if response.headers else ""
        logger.info(f"[EMAIL] To: {message.to} | Cc: {message.cc} | Subject: {message.subject}")
        return DeliveryResult(
            success=True,
            recipient=message.to,
            subject=message.subject,
            status_code=response.status_code,
            message_id=message_id,
        )


# =============================================================================
# Recording channel
# =============================================================================

class RecordingEmailChannel(EmailChannel):
    """
    Email channel that logs sends and keeps them for inspection.

    Can simulate an unconfigured credential or a provider rejection.
    """

    def __init__(self, configured: bool = True, fail_with: Optional[DeliveryError] = None):
        """
        Args:
            configured: Value reported by is_configured()
            fail_with: If set, every send raises this error
        """
        self.configured = configured
        self.fail_with = fail_with
        self.sent_messages: list[DeliveryResult] = []

    def is_configured(self) -> bool:
        return self.configured

    def send(self, message: EmailMessage) -> DeliveryResult:
        if self.fail_with is not None:
            logger.error(f"[EMAIL FAILED] To: {message.to} | Subject: {message.subject} | Error: {self.fail_with}")
            raise self.fail_with

        result = DeliveryResult(
            success=True,
            recipient=message.to,
            subject=message.subject,
            status_code=202,
            message_id=f"local-{len(self.sent_messages) + 1}",
            message=message,
        )
        logger.info(f"[EMAIL] To: {message.to} | Cc: {message.cc} | Subject: {message.subject}")
        logger.debug(f"[EMAIL BODY] {message.text}")

        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        """Get the number of messages sent."""
        return len(self.sent_messages)

    def find_message_to(self, recipient: str) -> Optional[EmailMessage]:
        """Find the first message sent to a specific recipient."""
        for result in self.sent_messages:
            if result.recipient == recipient:
                return result.message
        return None

    def clear_history(self):
        """Clear sent message history."""
        self.sent_messages.clear()
