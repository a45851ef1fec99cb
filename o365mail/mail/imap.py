"""IMAP mail backend authenticated with XOAUTH2."""

from __future__ import annotations

import imaplib
import re
from email import message_from_bytes, policy
from email.parser import BytesHeaderParser
from email.utils import getaddresses, parsedate_to_datetime
from typing import Any, Callable

from loguru import logger

from o365mail.auth.sasl import MECHANISM, XOAuth2Mechanism
from o365mail.mail.base import Email, Folder, MailBackend, MailError, SearchCriteria, SendOptions
from o365mail.mail.smtp import SMTPSender

DEFAULT_IMAP_SERVER = "outlook.office365.com"
DEFAULT_IMAP_PORT = 993
TRASH_FOLDER = "Deleted Items"
HEADER_FIELDS = "FROM TO CC SUBJECT DATE MESSAGE-ID"

_UID_RE = re.compile(rb"UID (\d+)")
_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")
_LIST_RE = re.compile(rb'^\((?P<flags>[^)]*)\) (?P<delim>"[^"]*"|NIL) (?P<name>.+)$')


def _quote(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _imap_date(value) -> str:
    return value.strftime("%d-%b-%Y")


def _check(typ: str, data: list[Any], action: str) -> list[Any]:
    if typ != "OK":
        detail = b" ".join(d for d in data if isinstance(d, bytes)).decode(errors="replace")
        raise MailError(f"IMAP {action} failed: {detail}")
    return data


def _addresses(value: Any) -> list[str]:
    """Split an address header; quoted display names may contain commas."""
    result = []
    for name, address in getaddresses([str(value or "")]):
        if address:
            result.append(f"{name} <{address}>" if name else address)
    return result


def _parse_email(uid: str, flags: bytes, raw: bytes, full: bool) -> Email:
    if full:
        msg = message_from_bytes(raw, policy=policy.default)
    else:
        msg = BytesHeaderParser(policy=policy.default).parsebytes(raw)
    try:
        date = parsedate_to_datetime(msg["Date"]) if msg["Date"] else None
    except (TypeError, ValueError):
        date = None

    body = ""
    if full:
        part = msg.get_body(preferencelist=("plain", "html"))
        if part is not None:
            body = part.get_content()

    return Email(
        id=uid,
        message_id=str(msg["Message-ID"] or ""),
        subject=str(msg["Subject"] or ""),
        sender=str(msg["From"] or ""),
        to=_addresses(msg["To"]),
        cc=_addresses(msg["Cc"]),
        date=date,
        unread=b"\\Seen" not in flags,
        body=body,
    )


def _parse_fetch(data: list[Any], full: bool) -> list[Email]:
    emails = []
    for item in data:
        if not isinstance(item, tuple) or len(item) < 2:
            continue
        meta, raw = item[0], item[1]
        uid_match = _UID_RE.search(meta)
        if not uid_match:
            continue
        flags_match = _FLAGS_RE.search(meta)
        flags = flags_match.group(1) if flags_match else b""
        emails.append(_parse_email(uid_match.group(1).decode(), flags, raw, full))
    return emails


class IMAPBackend(MailBackend):
    """Mailbox access over IMAP; sending is delegated to SMTP."""

    name = "imap"

    def __init__(
        self,
        email: str,
        access_token: str,
        server: str = DEFAULT_IMAP_SERVER,
        port: int = DEFAULT_IMAP_PORT,
        smtp: SMTPSender | None = None,
        timeout: float = 30.0,
        imap_factory: Callable[..., imaplib.IMAP4] = imaplib.IMAP4_SSL,
    ):
        self.email = email
        self._access_token = access_token
        self.server = server or DEFAULT_IMAP_SERVER
        self.port = port or DEFAULT_IMAP_PORT
        self._smtp = smtp or SMTPSender(email)
        self._timeout = timeout
        self._imap_factory = imap_factory
        self._conn: imaplib.IMAP4 | None = None

    def connect(self) -> "IMAPBackend":
        try:
            conn = self._imap_factory(self.server, self.port, timeout=self._timeout)
        except OSError as exc:
            raise MailError(f"Failed to connect to IMAP server {self.server}:{self.port}: {exc}") from exc
        try:
            conn.authenticate(MECHANISM, XOAuth2Mechanism(self.email, self._access_token))
        except imaplib.IMAP4.error as exc:
            try:
                conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass
            raise MailError(f"IMAP authentication failed: {exc}") from exc
        logger.debug(f"IMAP authenticated as {self.email} on {self.server}")
        self._conn = conn
        return self

    @property
    def conn(self) -> imaplib.IMAP4:
        if self._conn is None:
            self.connect()
        return self._conn  # type: ignore[return-value]

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass
            self._conn = None

    def _call(self, action: str, method: str, *args: Any, **kwargs: Any) -> list[Any]:
        """Run one IMAP command; protocol and socket failures become MailError."""
        try:
            typ, data = getattr(self.conn, method)(*args, **kwargs)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailError(f"IMAP {action} failed: {exc}") from exc
        return _check(typ, data, action)

    def _select(self, folder: str, readonly: bool) -> None:
        name = folder or "INBOX"
        self._call(f"SELECT {name}", "select", _quote(name), readonly=readonly)

    def _uid(self, command: str, *args: str) -> list[Any]:
        return self._call(command, "uid", command, *args)

    def _search(self, *criteria: str) -> list[str]:
        data = self._uid("SEARCH", *criteria)
        return [uid.decode() for uid in (data[0] or b"").split()]

    def _fetch_headers(self, uids: list[str]) -> list[Email]:
        if not uids:
            return []
        data = self._uid("FETCH", ",".join(uids), f"(UID FLAGS BODY.PEEK[HEADER.FIELDS ({HEADER_FIELDS})])")
        emails = _parse_fetch(data, full=False)
        emails.sort(key=lambda e: int(e.id), reverse=True)
        return emails

    def list_emails(self, folder: str, limit: int = 20, unread_only: bool = False) -> list[Email]:
        self._select(folder, readonly=True)
        uids = self._search("UNSEEN" if unread_only else "ALL")
        return self._fetch_headers(uids[-limit:] if limit > 0 else uids)

    def get_email(self, folder: str, message_id: str) -> Email:
        self._select(folder, readonly=True)
        emails = _parse_fetch(self._uid("FETCH", message_id, "(UID FLAGS BODY.PEEK[])"), full=True)
        if not emails:
            raise MailError(f"Message {message_id} not found in {folder or 'INBOX'}")
        return emails[0]

    def search_emails(self, folder: str, criteria: SearchCriteria, limit: int = 20) -> list[Email]:
        terms: list[str] = []
        if criteria.sender:
            terms += ["FROM", _quote(criteria.sender)]
        if criteria.subject:
            terms += ["SUBJECT", _quote(criteria.subject)]
        if criteria.since:
            terms += ["SINCE", _imap_date(criteria.since)]
        if criteria.unread_only:
            terms.append("UNSEEN")
        self._select(folder, readonly=True)
        uids = self._search(*(terms or ["ALL"]))
        return self._fetch_headers(uids[-limit:] if limit > 0 else uids)

    def mark_read(self, folder: str, message_id: str, read: bool = True) -> None:
        self._select(folder, readonly=False)
        self._uid("STORE", message_id, "+FLAGS" if read else "-FLAGS", "(\\Seen)")

    def move_email(self, folder: str, message_id: str, destination: str) -> None:
        self._select(folder, readonly=False)
        if "MOVE" in getattr(self.conn, "capabilities", ()):
            self._uid("MOVE", message_id, _quote(destination))
            return
        self._uid("COPY", message_id, _quote(destination))
        self._uid("STORE", message_id, "+FLAGS", "(\\Deleted)")
        self._call("EXPUNGE", "expunge")

    def trash_email(self, folder: str, message_id: str) -> None:
        self.move_email(folder, message_id, TRASH_FOLDER)

    def send(self, options: SendOptions) -> None:
        self._smtp.send(self._access_token, options)

    def list_folders(self) -> list[Folder]:
        data = self._call("LIST", "list")
        folders = []
        for line in data:
            if not isinstance(line, bytes):
                continue
            match = _LIST_RE.match(line)
            if not match:
                continue
            name = match.group("name").decode(errors="replace").strip().strip('"')
            flags = match.group("flags")
            folders.append(Folder(id=name, name=name, child_folder_count=int(b"\\HasChildren" in flags)))
        return folders

    def create_folder(self, name: str) -> None:
        self._call(f"CREATE {name}", "create", _quote(name))

    def delete_folder(self, name: str) -> None:
        self._call(f"DELETE {name}", "delete", _quote(name))
