"""
auth/email.py -- Outbound email for password reset messages.

Two senders behind one protocol:
  LogEmailSender      logs the message instead of sending it (dev/tests).
  SendGridEmailSender POSTs to the SendGrid v3 mail/send endpoint.

send_email() never raises on delivery failure; it logs and returns False.
The password reset flow treats a failed send the same as a successful one.

Layer rule: no imports from api/, rbac/, or cache/.
"""

from __future__ import annotations

import html
import logging
from typing import Protocol

import requests

logger = logging.getLogger("gatekeeper.email")

SENDGRID_API = "https://api.sendgrid.com/v3/mail/send"


class EmailSender(Protocol):
    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool: ...


class LogEmailSender:
    """Records messages in memory and logs them. Nothing leaves the process."""

    def __init__(self, sender: str = "noreply@example.com") -> None:
        self.sender = sender
        self.outbox: list[dict[str, str]] = []

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        self.outbox.append({"to": to, "subject": subject, "html": html_body, "text": text_body})
        logger.info("Email (not sent) from=%s to=%s subject=%r", self.sender, to, subject)
        logger.debug("Email body:\n%s", text_body)
        return True


class SendGridEmailSender:
    def __init__(self, api_key: str, sender: str, timeout: float = 10) -> None:
        if not api_key:
            raise ValueError("SENDGRID_API_KEY is required when EMAIL_PROVIDER=sendgrid.")
        self.sender = sender
        self.timeout = timeout
        # Shared session for connection pooling; the API never redirects.
        self._session = requests.Session()
        self._session.max_redirects = 0
        self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text_body},
                {"type": "text/html", "value": html_body},
            ],
        }
        try:
            resp = self._session.post(SENDGRID_API, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.warning("SendGrid delivery to %s failed: %s", to, e)
            return False
        logger.info("Email sent to %s via SendGrid (status %s)", to, resp.status_code)
        return True


def build_email_sender(provider: str, sender: str, api_key: str = "") -> EmailSender:
    if provider == "sendgrid":
        return SendGridEmailSender(api_key=api_key, sender=sender)
    return LogEmailSender(sender=sender)


def password_reset_message(first_name: str, reset_url: str, expire_minutes: int) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body) for a reset email."""
    greeting = f"Hello {first_name}," if first_name else "Hello,"
    subject = "Password Reset Request"
    html_body = (
        "<h2>Password Reset Request</h2>"
        f"<p>{html.escape(greeting)}</p>"
        "<p>You have requested to reset your password. Click the link below to proceed:</p>"
        f'<p><a href="{reset_url}">Reset Password</a></p>'
        f"<p>This link will expire in {expire_minutes} minutes.</p>"
        "<p>If you didn't request this password reset, please ignore this email.</p>"
    )
    text_body = (
        "Password Reset Request\n\n"
        f"{greeting}\n\n"
        "You have requested to reset your password. Open the link below to proceed:\n\n"
        f"{reset_url}\n\n"
        f"This link will expire in {expire_minutes} minutes.\n\n"
        "If you didn't request this password reset, please ignore this email.\n"
    )
    return subject, html_body, text_body
