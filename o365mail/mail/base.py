"""Backend-neutral mailbox interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class MailError(Exception):
    """A mailbox operation failed."""


@dataclass
class Email:
    """A message as shown to the user. ``id`` is a UID (IMAP) or a Graph id."""

    id: str
    subject: str = ""
    sender: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    date: datetime | None = None
    unread: bool = False
    preview: str = ""
    body: str = ""
    message_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "message_id": self.message_id,
            "subject": self.subject,
            "from": self.sender,
            "to": self.to,
            "date": self.date.isoformat() if self.date else None,
            "unread": self.unread,
        }
        if self.cc:
            data["cc"] = self.cc
        if self.preview:
            data["preview"] = self.preview
        if self.body:
            data["body"] = self.body
        return data


@dataclass
class Folder:
    id: str
    name: str
    unread_count: int | None = None
    total_count: int | None = None
    child_folder_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unread_count": self.unread_count,
            "total_count": self.total_count,
            "child_folder_count": self.child_folder_count,
        }


@dataclass
class SendOptions:
    to: list[str]
    subject: str
    body: str
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    html: bool = False

    def recipients(self) -> list[str]:
        return [*self.to, *self.cc, *self.bcc]


@dataclass
class SearchCriteria:
    sender: str = ""
    subject: str = ""
    since: datetime | None = None
    unread_only: bool = False


class MailBackend(ABC):
    """Mailbox operations shared by the IMAP/SMTP and Graph backends.

    Folders are addressed by name for IMAP and by id or well-known name
    (``inbox``, ``deleteditems``...) for Graph.
    """

    name: str = ""

    @abstractmethod
    def list_emails(self, folder: str, limit: int = 20, unread_only: bool = False) -> list[Email]: ...

    @abstractmethod
    def get_email(self, folder: str, message_id: str) -> Email: ...

    @abstractmethod
    def search_emails(self, folder: str, criteria: SearchCriteria, limit: int = 20) -> list[Email]: ...

    @abstractmethod
    def mark_read(self, folder: str, message_id: str, read: bool = True) -> None: ...

    @abstractmethod
    def move_email(self, folder: str, message_id: str, destination: str) -> None: ...

    @abstractmethod
    def trash_email(self, folder: str, message_id: str) -> None: ...

    @abstractmethod
    def send(self, options: SendOptions) -> None: ...

    @abstractmethod
    def list_folders(self) -> list[Folder]: ...

    @abstractmethod
    def create_folder(self, name: str) -> None: ...

    @abstractmethod
    def delete_folder(self, name: str) -> None: ...

    def close(self) -> None:
        return None

    def __enter__(self) -> "MailBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
