"""Mail backends (Graph REST, IMAP/SMTP)."""

from __future__ import annotations

from o365mail.config.schema import Config
from o365mail.mail.base import Email, Folder, MailBackend, MailError, SearchCriteria, SendOptions
from o365mail.mail.graph import GraphAPIError, GraphBackend
from o365mail.mail.imap import IMAPBackend
from o365mail.mail.smtp import SMTPSender


def create_backend(config: Config, account: str, access_token: str) -> MailBackend:
    """Build the backend selected by ``config.backend`` for one account."""
    if config.backend == "imap":
        smtp = SMTPSender(
            account,
            server=config.smtp_server,
            port=config.smtp_port,
            timeout=config.http_timeout,
        )
        return IMAPBackend(
            account,
            access_token,
            server=config.imap_server,
            port=config.imap_port,
            smtp=smtp,
            timeout=config.http_timeout,
        )
    return GraphBackend(access_token, timeout=config.http_timeout)


__all__ = [
    "Email",
    "Folder",
    "GraphAPIError",
    "GraphBackend",
    "IMAPBackend",
    "MailBackend",
    "MailError",
    "SMTPSender",
    "SearchCriteria",
    "SendOptions",
    "create_backend",
]
