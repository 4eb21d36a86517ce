"""
SMTP delivery of a rendered digest.

One message per run, sent to every configured recipient, with a plain-text
body and an HTML alternative. Gmail works with ``smtp.gmail.com:587``,
STARTTLS, and an App Password in ``EMAIL_PASSWORD``.

``send_digest()`` raises ``DeliveryError`` on any SMTP or socket failure;
``DailyForecastJob`` turns that into a failed ``DeliveryResult``.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Callable, Optional

from stock_forecaster.delivery.formatters import (
    format_digest_html,
    format_digest_text,
    format_subject,
)
from stock_forecaster.errors import ConfigError, DeliveryError
from stock_forecaster.models.digest import Digest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of handing a digest to the mail server."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def build_message(
    digest: Digest,
    sender: str,
    recipients: list[str],
    subject_prefix: str = "",
) -> EmailMessage:
    """Build the multipart/alternative message for ``digest``."""
    msg = EmailMessage()
    msg["Subject"] = format_subject(digest, subject_prefix)
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Message-ID"] = make_msgid(domain=sender.rpartition("@")[2] or None)
    msg.set_content(format_digest_text(digest))
    msg.add_alternative(format_digest_html(digest), subtype="html")
    return msg


class EmailSender:
    """Sends digests through an SMTP relay.

    Args:
        host:         SMTP host.
        port:         SMTP port (587 for STARTTLS).
        username:     Login; also the ``From`` address unless ``sender`` is given.
        password:     Login password.
        sender:       Optional explicit ``From`` address.
        use_starttls: Upgrade the connection with STARTTLS before login.
        timeout:      Socket timeout in seconds.
        smtp_factory: Connection factory (tests pass a mock). Default ``smtplib.SMTP``.

    Raises:
        ConfigError: If no sender address can be determined.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_starttls: bool = True,
        timeout: float = 30.0,
        smtp_factory: Callable[..., Any] = smtplib.SMTP,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        if not self.sender:
            raise ConfigError("EMAIL_USER must be set in .env to send email.")
        self.use_starttls = use_starttls
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    def send_digest(
        self,
        digest: Digest,
        recipients: list[str],
        subject_prefix: str = "",
    ) -> str:
        """Send ``digest`` to ``recipients`` and return the Message-ID.

        Raises:
            ConfigError:   If ``recipients`` is empty.
            DeliveryError: On any SMTP or socket failure.
        """
        if not recipients:
            raise ConfigError("No email recipients configured ([email].recipients).")

        msg = build_message(digest, self.sender, recipients, subject_prefix)
        try:
            with self._smtp_factory(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_starttls:
                    smtp.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"SMTP delivery to {self.host}:{self.port} failed: {exc}") from exc

        message_id = str(msg["Message-ID"])
        logger.info(
            "Email sent to %d recipient(s) | subject=%r | message_id=%s",
            len(recipients), msg["Subject"], message_id,
        )
        return message_id
