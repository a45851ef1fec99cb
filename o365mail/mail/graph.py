"""Microsoft Graph mail backend."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from o365mail.mail.base import Email, Folder, MailBackend, MailError, SearchCriteria, SendOptions
from o365mail.utils.helpers import parse_address

GRAPH_API_BASE_URL = "https://graph.microsoft.com/v1.0"
LIST_FIELDS = "id,subject,bodyPreview,receivedDateTime,isRead,from,toRecipients,hasAttachments,internetMessageId"
DETAIL_FIELDS = "id,subject,body,receivedDateTime,isRead,from,toRecipients,ccRecipients,hasAttachments,internetMessageId"

# Graph accepts these names in place of a folder id.
WELL_KNOWN_FOLDERS = {
    "inbox": "inbox",
    "drafts": "drafts",
    "sentitems": "sentitems",
    "sent items": "sentitems",
    "sent": "sentitems",
    "deleteditems": "deleteditems",
    "deleted items": "deleteditems",
    "trash": "deleteditems",
    "junkemail": "junkemail",
    "junk email": "junkemail",
    "junk": "junkemail",
    "archive": "archive",
    "outbox": "outbox",
}


class GraphAPIError(MailError):
    """Graph returned an error status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Graph API error (status {status_code}): {body}")
        self.status_code = status_code
        self.body = body


def _format_address(wrapper: dict[str, Any] | None) -> str:
    addr = (wrapper or {}).get("emailAddress") or {}
    name = addr.get("name") or ""
    address = addr.get("address") or ""
    if name and name != address:
        return f"{name} <{address}>"
    return address


def _recipients(addresses: list[str]) -> list[dict[str, Any]]:
    return [{"emailAddress": {"address": parse_address(a)}} for a in addresses]


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _escape_odata(value: str) -> str:
    return value.replace("'", "''")


def message_to_email(msg: dict[str, Any]) -> Email:
    return Email(
        id=msg.get("id", ""),
        message_id=msg.get("internetMessageId", ""),
        subject=msg.get("subject") or "",
        sender=_format_address(msg.get("from")),
        to=[_format_address(r) for r in msg.get("toRecipients") or []],
        cc=[_format_address(r) for r in msg.get("ccRecipients") or []],
        date=_parse_datetime(msg.get("receivedDateTime")),
        unread=not msg.get("isRead", False),
        preview=msg.get("bodyPreview") or "",
        body=(msg.get("body") or {}).get("content", ""),
    )


class GraphBackend(MailBackend):
    """Mailbox access through the Graph REST API.

    Only the bearer token is supplied here; httpx owns the HTTP framing.
    """

    name = "graph"

    def __init__(
        self,
        access_token: str,
        base_url: str = GRAPH_API_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
        )
        self._folders: list[Folder] | None = None

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            raise MailError(f"Failed to send request to Graph: {exc}") from exc
        logger.debug(f"Graph {method} {endpoint} -> {response.status_code}")
        if response.status_code >= 400:
            raise GraphAPIError(response.status_code, response.text)
        if not response.content:
            return {}
        return response.json()

    def resolve_folder(self, folder: str) -> str:
        """Map a folder name, path or id to the id Graph expects in a URL.

        Well-known names are used as-is; anything else is looked up in the
        folder list once per backend and matched by id or display name.
        """
        if not folder:
            return "inbox"
        well_known = WELL_KNOWN_FOLDERS.get(folder.lower())
        if well_known:
            return well_known
        return self.folder_id(folder)

    def _folder_path(self, folder: str) -> str:
        return f"/me/mailFolders/{quote(self.resolve_folder(folder), safe='')}"

    @staticmethod
    def _message_path(message_id: str) -> str:
        return f"/me/messages/{quote(message_id, safe='')}"

    def list_emails(self, folder: str, limit: int = 20, unread_only: bool = False) -> list[Email]:
        params = {"$top": str(limit), "$orderby": "receivedDateTime desc", "$select": LIST_FIELDS}
        if unread_only:
            params["$filter"] = "isRead eq false"
        data = self._request("GET", f"{self._folder_path(folder)}/messages", params=params)
        return [message_to_email(msg) for msg in data.get("value", [])]

    def get_email(self, folder: str, message_id: str) -> Email:
        data = self._request(
            "GET",
            f"{self._folder_path(folder)}/messages/{quote(message_id, safe='')}",
            params={"$select": DETAIL_FIELDS},
        )
        return message_to_email(data)

    def search_emails(self, folder: str, criteria: SearchCriteria, limit: int = 20) -> list[Email]:
        filters = []
        if criteria.sender:
            filters.append(f"contains(from/emailAddress/address,'{_escape_odata(criteria.sender)}')")
        if criteria.subject:
            filters.append(f"contains(subject,'{_escape_odata(criteria.subject)}')")
        if criteria.since:
            since = criteria.since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            filters.append(f"receivedDateTime ge {since}")
        if criteria.unread_only:
            filters.append("isRead eq false")

        params = {"$top": str(limit), "$orderby": "receivedDateTime desc", "$select": LIST_FIELDS}
        if filters:
            params["$filter"] = " and ".join(filters)
        data = self._request("GET", f"{self._folder_path(folder)}/messages", params=params)
        return [message_to_email(msg) for msg in data.get("value", [])]

    def mark_read(self, folder: str, message_id: str, read: bool = True) -> None:
        self._request(
            "PATCH",
            f"{self._folder_path(folder)}/messages/{quote(message_id, safe='')}",
            json={"isRead": read},
        )

    def move_email(self, folder: str, message_id: str, destination: str) -> None:
        self._request(
            "POST",
            f"{self._folder_path(folder)}/messages/{quote(message_id, safe='')}/move",
            json={"destinationId": self.resolve_folder(destination)},
        )

    def trash_email(self, folder: str, message_id: str) -> None:
        self.move_email(folder, message_id, "deleteditems")

    def list_emails_from_senders(self, folder: str, senders: list[str], limit: int = 0) -> list[Email]:
        """Messages whose From address exactly matches one of ``senders``.

        Graph cannot filter on several exact addresses at once, so the folder
        is paged through and matched locally. ``limit`` 0 means no limit.
        """
        if not senders:
            raise MailError("At least one sender address is required")
        wanted = {parse_address(s).lower() for s in senders}

        matches: list[Email] = []
        endpoint: str | None = f"{self._folder_path(folder)}/messages"
        params: dict[str, str] | None = {
            "$top": "100",
            "$orderby": "receivedDateTime desc",
            "$select": LIST_FIELDS,
        }
        while endpoint:
            data = self._request("GET", endpoint, params=params)
            for msg in data.get("value", []):
                address = ((msg.get("from") or {}).get("emailAddress") or {}).get("address") or ""
                if address.lower() in wanted:
                    matches.append(message_to_email(msg))
                    if limit > 0 and len(matches) >= limit:
                        return matches
            # nextLink already carries the query string.
            endpoint, params = data.get("@odata.nextLink"), None
        return matches

    def reply_email(self, message_id: str, comment: str = "", reply_all: bool = False) -> None:
        action = "replyAll" if reply_all else "reply"
        body = {"comment": comment} if comment else {}
        self._request("POST", f"{self._message_path(message_id)}/{action}", json=body)

    def forward_email(self, message_id: str, to: list[str], comment: str = "") -> None:
        if not to:
            raise MailError("At least one recipient is required")
        body: dict[str, Any] = {"toRecipients": _recipients(to)}
        if comment:
            body["comment"] = comment
        self._request("POST", f"{self._message_path(message_id)}/forward", json=body)

    @staticmethod
    def _message_payload(options: SendOptions) -> dict[str, Any]:
        message: dict[str, Any] = {
            "subject": options.subject,
            "body": {"contentType": "html" if options.html else "text", "content": options.body},
            "toRecipients": _recipients(options.to),
        }
        if options.cc:
            message["ccRecipients"] = _recipients(options.cc)
        if options.bcc:
            message["bccRecipients"] = _recipients(options.bcc)
        return message

    def send(self, options: SendOptions) -> None:
        self._request(
            "POST",
            "/me/sendMail",
            json={"message": self._message_payload(options), "saveToSentItems": True},
        )

    # Drafts

    def create_draft(self, options: SendOptions) -> str:
        """Save a message in Drafts and return its id."""
        data = self._request("POST", "/me/mailFolders/drafts/messages", json=self._message_payload(options))
        draft_id = data.get("id")
        if not draft_id:
            raise MailError("Graph did not return an id for the new draft")
        return draft_id

    def list_drafts(self, limit: int = 50) -> list[Email]:
        return self.list_emails("drafts", limit=limit)

    def send_draft(self, message_id: str) -> None:
        self._request("POST", f"{self._message_path(message_id)}/send")

    def delete_draft(self, message_id: str) -> None:
        self._request("DELETE", self._message_path(message_id))

    # Folders

    def _folder_pages(self, endpoint: str, parent: str = "") -> list[Folder]:
        folders: list[Folder] = []
        next_endpoint: str | None = endpoint
        while next_endpoint:
            data = self._request("GET", next_endpoint)
            for item in data.get("value", []):
                name = item.get("displayName", "")
                folder = Folder(
                    id=item.get("id", ""),
                    name=f"{parent}/{name}" if parent else name,
                    unread_count=item.get("unreadItemCount"),
                    total_count=item.get("totalItemCount"),
                    child_folder_count=item.get("childFolderCount", 0),
                )
                folders.append(folder)
                if folder.child_folder_count:
                    children = f"/me/mailFolders/{quote(folder.id, safe='')}/childFolders?$top=100"
                    folders.extend(self._folder_pages(children, parent=folder.name))
            next_endpoint = data.get("@odata.nextLink")
        return folders

    def list_folders(self) -> list[Folder]:
        """All folders; nested ones are named by their path, e.g. ``Inbox/Projects``."""
        self._folders = self._folder_pages("/me/mailFolders?$top=100")
        return list(self._folders)

    def folder_id(self, name: str) -> str:
        folders = self._folders if self._folders is not None else self.list_folders()
        for folder in folders:
            if folder.id == name or folder.name.lower() == name.lower():
                return folder.id
        raise MailError(f"Folder '{name}' not found")

    def create_folder(self, name: str) -> None:
        self._request("POST", "/me/mailFolders", json={"displayName": name})
        self._folders = None

    def delete_folder(self, name: str) -> None:
        self._request("DELETE", f"/me/mailFolders/{quote(self.folder_id(name), safe='')}")
        self._folders = None

    # Inbox rules are passed through as Graph returns them.

    @staticmethod
    def _rule_path(rule_id: str) -> str:
        return f"/me/mailFolders/inbox/messageRules/{quote(rule_id, safe='')}"

    def list_rules(self) -> list[dict[str, Any]]:
        data = self._request("GET", "/me/mailFolders/inbox/messageRules")
        return list(data.get("value", []))

    def get_rule(self, rule_id: str) -> dict[str, Any]:
        return self._request("GET", self._rule_path(rule_id))

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> dict[str, Any]:
        return self._request("PATCH", self._rule_path(rule_id), json={"isEnabled": enabled})

    def delete_rule(self, rule_id: str) -> None:
        self._request("DELETE", self._rule_path(rule_id))
