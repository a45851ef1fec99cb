"""Configuration schema using Pydantic."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from o365mail.auth.constants import AUTHORITY, CLIENT_ID, HTTP_TIMEOUT_SEC
from o365mail.utils.helpers import get_data_path


class Config(BaseModel):
    """Root configuration for o365mail."""

    client_id: str = CLIENT_ID
    authority: str = AUTHORITY
    current_account: str = ""
    backend: Literal["graph", "imap"] = "graph"
    imap_server: str = "outlook.office365.com"
    imap_port: int = 993
    smtp_server: str = "smtp.office365.com"
    smtp_port: int = 587
    cache_dir: str = Field(default_factory=lambda: str(get_data_path()))
    http_timeout: float = HTTP_TIMEOUT_SEC
    debug: bool = False

    @field_validator("client_id", "authority", "imap_server", "smtp_server", "cache_dir")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()
