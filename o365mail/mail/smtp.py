"""SMTP sender authenticated with XOAUTH2."""

from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage
from typing import Callable

from loguru import logger

from o365mail.auth.sasl import MECHANISM, encode_mechanism_payload
from o365mail.mail.base import MailError, SendOptions
from o365mail.utils.helpers import parse_address

DEFAULT_SMTP_SERVER = "smtp.office365.com"
DEFAULT_SMTP_PORT = 587


def build_message(sender: str, options: SendOptions) -> EmailMessage:
    """Single-part text or HTML message; Bcc is never written to the headers."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = ", ".join(options.to)
    if options.cc:
        msg["Cc"] = ", ".join(options.cc)
    msg["Subject"] = options.subject
    msg.set_content(options.body, subtype="html" if options.html else "plain")
    return msg


class SMTPSender:
    def __init__(
        self,
        email: str,
        server: str = DEFAULT_SMTP_SERVER,
        port: int = DEFAULT_SMTP_PORT,
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        self.email = email
        self.server = server or DEFAULT_SMTP_SERVER
        self.port = port or DEFAULT_SMTP_PORT
        self.timeout = timeout
        self._smtp_factory = smtp_factory

    def _authenticate(self, smtp: smtplib.SMTP, access_token: str) -> None:
        code, reply = smtp.docmd("AUTH", f"{MECHANISM} {encode_mechanism_payload(self.email, access_token)}")
        if code == 334:
            # XOAUTH2 challenges carry an error; an empty reply fetches the final status.
            code, reply = smtp.docmd("")
        if code != 235:
            raise MailError(f"SMTP authentication failed ({code}): {reply.decode(errors='replace')}")

    def send(self, access_token: str, options: SendOptions) -> None:
        recipients = [parse_address(r) for r in options.recipients()]
        if not recipients:
            raise MailError("At least one recipient is required")

        message = build_message(self.email, options)
        try:
            with self._smtp_factory(self.server, self.port, timeout=self.timeout) as smtp:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=ssl.create_default_context())
                    smtp.ehlo()
                self._authenticate(smtp, access_token)
                smtp.send_message(message, from_addr=self.email, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailError(f"Failed to send mail via {self.server}: {exc}") from exc
        logger.debug(f"Sent message to {len(recipients)} recipient(s) via SMTP")
