"""Multi-account token management on top of the MSAL cache."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any

import requests
from loguru import logger

from o365mail.auth.constants import GRAPH_SCOPES
from o365mail.auth.errors import (
    RETRY_LATER,
    AccountNotFoundError,
    AuthCancelledError,
    AuthError,
    NotLoggedInError,
    RefreshFailedError,
)
from o365mail.auth.models import AccessToken, AuthState, AuthStatus, DetailedAuthStatus
from o365mail.auth.storage import SerializableCache, TokenStore


def _result_expiry(result: dict[str, Any]) -> datetime:
    expires_on = result.get("expires_on")
    if expires_on:
        return datetime.fromtimestamp(int(expires_on), tz=timezone.utc)
    return datetime.now(timezone.utc) + timedelta(seconds=int(result.get("expires_in") or 0))


def _describe(result: dict[str, Any]) -> str:
    error = result.get("error") or "unknown_error"
    description = result.get("error_description")
    return f"{error}: {description}" if description else str(error)


def _check_cancel(cancel: threading.Event | None, username: str) -> None:
    if cancel is not None and cancel.is_set():
        raise AuthCancelledError(f"Token lookup for {username} was cancelled")


class TokenManager:
    """Resolves usable access tokens for cached accounts.

    Never starts an interactive flow: an account that cannot be refreshed
    silently is reported and the caller decides whether to log in again.
    """

    def __init__(
        self,
        app: Any,
        cache: SerializableCache,
        store: TokenStore,
        scopes: list[str] | None = None,
    ):
        self._app = app
        self._cache = cache
        self._store = store
        self._scopes = list(scopes or GRAPH_SCOPES)

    @property
    def store(self) -> TokenStore:
        return self._store

    def _accounts(self) -> list[dict[str, Any]]:
        try:
            return list(self._app.get_accounts() or [])
        except requests.RequestException as exc:
            raise AuthError(
                "Cannot read accounts from the identity provider", cause=exc, remediation=RETRY_LATER
            ) from exc

    def _find_account(self, account: str) -> dict[str, Any] | None:
        """Return the cached account; an empty name selects the first one."""
        for candidate in self._accounts():
            if not account or candidate.get("username") == account:
                return candidate
        return None

    def _acquire_silent(self, entry: dict[str, Any], scopes: list[str] | None) -> dict[str, Any]:
        username = entry.get("username", "")
        try:
            result = self._app.acquire_token_silent_with_error(list(scopes or self._scopes), account=entry)
        except requests.RequestException as exc:
            raise RefreshFailedError(
                f"Token refresh failed for {username}", cause=exc, remediation=RETRY_LATER
            ) from exc
        if not result:
            raise RefreshFailedError(f"Token refresh failed for {username}", cause="no refresh token in cache")
        if "access_token" not in result:
            raise RefreshFailedError(f"Token refresh failed for {username}", cause=_describe(result))
        return result

    def get_token(
        self,
        account: str,
        scopes: list[str] | None = None,
        cancel: threading.Event | None = None,
    ) -> AccessToken:
        """Return a valid token for the account, refreshing it silently if needed.

        A set ``cancel`` event stops the lookup before the refresh request is
        sent; MSAL gives no way to abort a request already in flight.
        """
        entry = self._find_account(account)
        if entry is None:
            if account:
                raise NotLoggedInError(f"No token found for {account}")
            raise NotLoggedInError("No valid token found")

        username = entry.get("username", account)
        _check_cancel(cancel, username)

        result = self._acquire_silent(entry, scopes)
        # A refreshed token must be durable before it is handed out.
        self._store.flush(self._cache)
        logger.debug(f"Access token resolved for {username}")
        return AccessToken(
            access_token=result["access_token"],
            account=username,
            expires_at=_result_expiry(result),
        )

    def get_access_token(
        self,
        account: str,
        scopes: list[str] | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        return self.get_token(account, scopes=scopes, cancel=cancel).access_token

    def list_accounts(self) -> list[str]:
        return [entry.get("username", "") for entry in self._accounts()]

    def _status_for(self, entry: dict[str, Any], cancel: threading.Event | None = None) -> AuthStatus:
        username = entry.get("username", "")
        _check_cancel(cancel, username)
        try:
            result = self._acquire_silent(entry, None)
        except RefreshFailedError as exc:
            return AuthStatus(state=AuthState.EXPIRED, account=username, error=str(exc.cause))
        self._store.flush(self._cache)
        return AuthStatus(state=AuthState.VALID, account=username, expires_at=_result_expiry(result))

    def get_status(self, account: str, cancel: threading.Event | None = None) -> AuthStatus:
        """Report the account's state, refreshing silently to find out.

        ``cancel`` is checked before each silent refresh starts; a refresh
        already on the wire runs to completion.
        """
        entry = self._find_account(account)
        if entry is None:
            return AuthStatus(state=AuthState.NOT_LOGGED_IN, account=account)
        return self._status_for(entry, cancel)

    def get_all_statuses(self, cancel: threading.Event | None = None) -> list[AuthStatus]:
        return [self._status_for(entry, cancel) for entry in self._accounts()]

    def get_detailed_status(self, account: str, cancel: threading.Event | None = None) -> DetailedAuthStatus:
        status = DetailedAuthStatus(
            account=account,
            cache_file=str(self._store.path),
            has_cached_token=self._store.has_token(),
            cache_size=self._store.size(),
        )
        accounts = self._accounts()
        status.cached_accounts = len(accounts)

        entry = self._find_account(account)
        if entry is None:
            status.last_error = f"account {account} not found in cache"
            return status

        status.found = True
        status.account = entry.get("username", account)
        _check_cancel(cancel, status.account)
        try:
            result = self._acquire_silent(entry, None)
        except RefreshFailedError as exc:
            status.last_error = str(exc.cause)
            return status
        self._store.flush(self._cache)
        status.silent_refresh_ok = True
        status.access_expiry = _result_expiry(result)
        return status

    def logout(self, account: str) -> None:
        """Remove one account from the cache."""
        for entry in self._accounts():
            if entry.get("username") == account:
                self._app.remove_account(entry)
                self._store.export(self._cache)
                logger.debug(f"Removed {account} from token cache")
                return
        raise AccountNotFoundError(f"Account {account} not found")

    def logout_all(self) -> None:
        """Remove every account and delete the cache file."""
        for entry in self._accounts():
            self._app.remove_account(entry)
        self._cache.deserialize("")
        self._store.clear()
