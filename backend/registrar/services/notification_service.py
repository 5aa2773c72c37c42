"""
Post-commit notifications for workflow events.

The workflow only needs the two calls on ``Notifier``. ``dispatch`` runs a
notification after the state change is committed. Any failure is turned into
a ``NotificationFailure`` that the caller attaches to its result as a warning.
The state change is never rolled back or retried.
"""

import html
import logging
import smtplib
import ssl
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Protocol

from registrar.config import settings
from registrar.errors import NotificationFailure
from registrar.schemas.request import RequestRecord
from registrar.stores.base import WorkflowStore

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify_document_ready(self, email: str, name: str, document_type: str, queue_number: str) -> None: ...

    def notify_payment_outcome(
        self, email: str, name: str, queue_number: str, approved: bool, reason: str | None = None
    ) -> None: ...


class LogNotifier:
    """Notifier used when no mail account is configured."""

    def notify_document_ready(self, email, name, document_type, queue_number):
        logger.info("Document ready: %s for %s <%s> (%s)", document_type, name, email, queue_number)

    def notify_payment_outcome(self, email, name, queue_number, approved, reason=None):
        outcome = "verified" if approved else f"rejected ({reason})"
        logger.info("Payment %s for %s <%s> (%s)", outcome, name, email, queue_number)


class SmtpNotifier:
    """Sends HTML mail over SMTP with STARTTLS."""

    def __init__(
        self,
        server: str,
        port: int,
        username: str,
        password: str | None,
        sender_name: str = "CDM Document Queue",
        use_tls: bool = True,
    ):
        self.server = server
        self.port = port
        self.username = username
        self.password = password
        self.sender_name = sender_name
        self.use_tls = use_tls

    def notify_document_ready(self, email, name, document_type, queue_number):
        subject = "Your Document is Ready for Pickup - CDM Document Queue"
        body = f"""
        <p>Dear {html.escape(name)},</p>
        <p>Your requested document <strong>{html.escape(document_type)}</strong> is now
        <strong>ready for pickup</strong> at the Registrar's Office.</p>
        <p>Queue number: <strong>{html.escape(queue_number)}</strong></p>
        <p>Please bring a valid ID when claiming your document.</p>
        <p>Regards,<br/>Registrar's Office</p>
        """
        self._send(email, name, subject, body)

    def notify_payment_outcome(self, email, name, queue_number, approved, reason=None):
        if approved:
            subject = "Payment Verified - CDM Document Queue"
            body = f"""
            <p>Dear {html.escape(name)},</p>
            <p>Your payment for request <strong>{html.escape(queue_number)}</strong> has been
            <strong>verified</strong> by the Accounting Office. Thank you.</p>
            <p>The request will proceed to the next stage.</p>
            <p>Regards,<br/>Registrar's Office</p>
            """
        else:
            subject = "Payment Rejected - CDM Document Queue"
            reason_html = html.escape(reason) if reason else (
                "Please re-upload a clearer receipt or correct reference number."
            )
            body = f"""
            <p>Dear {html.escape(name)},</p>
            <p>Your payment for request <strong>{html.escape(queue_number)}</strong> has been
            <strong>rejected</strong> by the Accounting Office.</p>
            <p><strong>Reason:</strong> {reason_html}</p>
            <p>Please re-upload your payment proof with the correct details so we can verify
            and continue processing your request.</p>
            <p>Regards,<br/>Accounting Office</p>
            """
        self._send(email, name, subject, body)

    def _send(self, to_email: str, to_name: str, subject: str, html_content: str):
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.sender_name, self.username))
        msg["To"] = formataddr((to_name, to_email))
        msg.attach(MIMEText(html_content, "html"))

        with smtplib.SMTP(self.server, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.password:
                server.login(self.username, self.password)
            server.send_message(msg)


def build_notifier() -> Notifier:
    if settings.mail_username:
        return SmtpNotifier(
            server=settings.mail_server,
            port=settings.mail_port,
            username=settings.mail_username,
            password=settings.mail_password,
            sender_name=settings.mail_sender_name,
            use_tls=settings.mail_use_tls,
        )
    return LogNotifier()


def dispatch(description: str, send: Callable[[], None]) -> NotificationFailure | None:
    try:
        send()
    except Exception as exc:
        logger.warning("Notification failed (%s): %s", description, exc, exc_info=True)
        return NotificationFailure(f"{description} notification failed: {exc}")
    return None


def _recipient(store: WorkflowStore, request: RequestRecord) -> tuple[str, str] | NotificationFailure:
    try:
        user = store.get_user(request.user_id)
    except Exception as exc:
        logger.warning("Could not look up user %s for notification: %s", request.user_id, exc)
        return NotificationFailure(f"Could not look up requester {request.user_id}: {exc}")
    if user is None or not user.email:
        logger.warning("No email on file for user %s; skipping notification", request.user_id)
        return NotificationFailure(f"No email on file for requester {request.user_id}")
    return user.email, user.full_name or "Student"


def send_document_ready(
    notifier: Notifier, store: WorkflowStore, request: RequestRecord
) -> NotificationFailure | None:
    recipient = _recipient(store, request)
    if isinstance(recipient, NotificationFailure):
        return recipient
    email, name = recipient
    return dispatch(
        "Document ready",
        lambda: notifier.notify_document_ready(email, name, request.document_type, request.queue_number),
    )


def send_payment_outcome(
    notifier: Notifier,
    store: WorkflowStore,
    request: RequestRecord,
    approved: bool,
    reason: str | None = None,
) -> NotificationFailure | None:
    recipient = _recipient(store, request)
    if isinstance(recipient, NotificationFailure):
        return recipient
    email, name = recipient
    label = "Payment verified" if approved else "Payment rejected"
    return dispatch(
        label,
        lambda: notifier.notify_payment_outcome(email, name, request.queue_number, approved, reason),
    )
