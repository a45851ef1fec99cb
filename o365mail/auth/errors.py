"""Authentication error taxonomy.

Every error carries the remediation the user should apply, so the CLI can
print it verbatim without knowing which phase failed.
"""

from __future__ import annotations

RERUN_LOGIN = "Run 'o365-mail auth login' to sign in again."
RETRY_LOGIN = "Run 'o365-mail auth login' again and complete the browser step before the code expires."
RETRY_LATER = "Check your network connection and retry."
CHECK_PERMISSIONS = "Check that the cache directory exists and is writable by the current user."


class AuthError(Exception):
    """Base class for authentication failures."""

    remediation: str = RERUN_LOGIN

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | str | None = None,
        remediation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if remediation is not None:
            self.remediation = remediation

    def __str__(self) -> str:
        text = self.message
        if self.cause is not None and str(self.cause) not in text:
            text = f"{text}: {self.cause}"
        return f"{text}\n{self.remediation}"


class StartAuthError(AuthError):
    """The device code flow could not be started."""

    remediation = RETRY_LATER


class PendingExpiredOrDeniedError(AuthError):
    """The browser step was not completed in time or consent was denied."""

    remediation = RETRY_LOGIN


class NotLoggedInError(AuthError):
    """No cached account matches the requested identity."""

    remediation = RERUN_LOGIN


class RefreshFailedError(AuthError):
    """The account is cached but silent refresh failed."""

    remediation = RERUN_LOGIN


class AuthCancelledError(AuthError):
    """The caller cancelled the operation before it completed."""

    remediation = "The operation was cancelled; retry when ready."


class PersistenceError(AuthError):
    """Reading or writing the token cache file failed."""

    remediation = CHECK_PERMISSIONS


class AccountNotFoundError(AuthError):
    """Logout was requested for an account that is not cached."""

    remediation = "Use 'o365-mail auth list' to see the signed-in accounts."


__all__ = [
    "AccountNotFoundError",
    "AuthCancelledError",
    "AuthError",
    "NotLoggedInError",
    "PendingExpiredOrDeniedError",
    "PersistenceError",
    "RefreshFailedError",
    "StartAuthError",
]
