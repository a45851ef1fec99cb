"""OAuth2 device code authentication and token management."""

from o365mail.auth.errors import (
    AccountNotFoundError,
    AuthCancelledError,
    AuthError,
    NotLoggedInError,
    PendingExpiredOrDeniedError,
    PersistenceError,
    RefreshFailedError,
    StartAuthError,
)
from o365mail.auth.flow import DeviceCodeAuthenticator, PendingAuthentication
from o365mail.auth.manager import TokenManager
from o365mail.auth.models import (
    AccessToken,
    AuthResult,
    AuthState,
    AuthStatus,
    DetailedAuthStatus,
    DeviceCodeInfo,
)
from o365mail.auth.sasl import XOAuth2Mechanism, build_mechanism_payload
from o365mail.auth.storage import PersistentTokenCache, TokenStore

__all__ = [
    "AccessToken",
    "AccountNotFoundError",
    "AuthCancelledError",
    "AuthError",
    "AuthResult",
    "AuthState",
    "AuthStatus",
    "DetailedAuthStatus",
    "DeviceCodeAuthenticator",
    "DeviceCodeInfo",
    "NotLoggedInError",
    "PendingAuthentication",
    "PendingExpiredOrDeniedError",
    "PersistenceError",
    "PersistentTokenCache",
    "RefreshFailedError",
    "StartAuthError",
    "TokenManager",
    "TokenStore",
    "XOAuth2Mechanism",
    "build_mechanism_payload",
]
