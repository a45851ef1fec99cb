"""OAuth data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass
class DeviceCodeInfo:
    """What the user needs to complete the browser step."""

    user_code: str
    verification_url: str
    expires_in: int
    expires_at: float
    message: str


@dataclass
class AuthResult:
    """Outcome of a completed device code flow."""

    access_token: str
    account: str
    expires_at: datetime


@dataclass
class AccessToken:
    """A bearer token for one account."""

    access_token: str
    account: str
    expires_at: datetime


class AuthState(str, Enum):
    NOT_LOGGED_IN = "not_logged_in"
    VALID = "valid"
    EXPIRED = "expired"


@dataclass
class AuthStatus:
    """Login state of one account."""

    state: AuthState
    account: str = ""
    expires_at: datetime | None = None
    error: str = ""

    @property
    def logged_in(self) -> bool:
        return self.state is not AuthState.NOT_LOGGED_IN


@dataclass
class DetailedAuthStatus:
    """Diagnostic view of the token cache for one account."""

    account: str
    cache_file: str
    has_cached_token: bool
    cache_size: int = 0
    cached_accounts: int = 0
    found: bool = False
    silent_refresh_ok: bool = False
    access_expiry: datetime | None = None
    last_error: str = ""
