"""Outbound e-mail for submission notifications.

Sending is best effort: ``Notifier`` logs and swallows every transport error so
a failed e-mail never turns a committed state change into an error response.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from functools import lru_cache

from directory_api.core.config import Settings, get_settings
from directory_api.core.urls import format_repository_url
from directory_api.services.repository import SubmissionRecord, UserRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OutboundEmail:
    sender: str
    recipient: str
    subject: str
    body: str
    created_at: datetime


class EmailTransport:
    def send(self, mail: OutboundEmail) -> None:
        raise NotImplementedError


class LoggingEmailTransport(EmailTransport):
    """Keeps messages in memory; used when no SMTP host is configured."""

    def __init__(self) -> None:
        self.messages: list[OutboundEmail] = []

    def send(self, mail: OutboundEmail) -> None:
        self.messages.append(mail)
        logger.info("mail recorded to=%s subject=%s", mail.recipient, mail.subject)


class SMTPEmailTransport(EmailTransport):
    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        use_starttls: bool,
        timeout_seconds: int = 10,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_starttls = use_starttls
        self._timeout_seconds = timeout_seconds

    def send(self, mail: OutboundEmail) -> None:
        msg = EmailMessage()
        msg["From"] = mail.sender
        msg["To"] = mail.recipient
        msg["Subject"] = mail.subject
        msg.set_content(mail.body)

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout_seconds) as smtp:
            if self._use_starttls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password or "")
            smtp.send_message(msg)


class Notifier:
    def __init__(self, transport: EmailTransport, *, sender: str, reviewers_address: str, frontend_url: str) -> None:
        self.transport = transport
        self.sender = sender
        self.reviewers_address = reviewers_address
        self.frontend_url = frontend_url.rstrip("/")

    async def submission_received(self, submission: SubmissionRecord) -> bool:
        repository = format_repository_url(submission.repository_url)
        return await self._deliver(
            recipient=self.reviewers_address,
            subject="A new submission is waiting for review",
            body=(
                f"A new submission ({repository}) has been received.\n\n"
                f"Please review it here: {self.frontend_url}/submissions/review\n"
            ),
        )

    async def submission_approved(self, submission: SubmissionRecord, owner: UserRecord) -> bool:
        repository = format_repository_url(submission.repository_url)
        return await self._deliver(
            recipient=owner.email,
            subject="Your submission has been approved",
            body=(
                f"Hi {owner.username},\n\n"
                f"Your submission ({repository}) has been approved and is now listed in the directory:\n"
                f"{self.frontend_url}/\n"
            ),
        )

    async def _deliver(self, *, recipient: str, subject: str, body: str) -> bool:
        mail = OutboundEmail(
            sender=self.sender,
            recipient=recipient,
            subject=subject,
            body=body,
            created_at=datetime.now(timezone.utc),
        )
        try:
            await asyncio.to_thread(self.transport.send, mail)
        except Exception:
            logger.exception("failed to send notification to=%s subject=%s", recipient, subject)
            return False
        return True


def build_notifier(settings: Settings) -> Notifier:
    transport: EmailTransport
    if settings.smtp_host:
        transport = SMTPEmailTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_starttls=settings.smtp_starttls,
        )
    else:
        transport = LoggingEmailTransport()
    return Notifier(
        transport,
        sender=settings.email_address,
        reviewers_address=settings.email_address,
        frontend_url=settings.frontend_url,
    )


@lru_cache
def get_notifier() -> Notifier:
    return build_notifier(get_settings())
