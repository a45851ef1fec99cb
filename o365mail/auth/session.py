"""Wiring of the token store, MSAL application and auth services."""

from __future__ import annotations

from typing import Any

import msal
import requests

from o365mail.auth.constants import GRAPH_SCOPES, OUTLOOK_SCOPES
from o365mail.auth.errors import RETRY_LATER, AuthError
from o365mail.auth.flow import DeviceCodeAuthenticator
from o365mail.auth.manager import TokenManager
from o365mail.auth.storage import PersistentTokenCache, TokenStore
from o365mail.config.schema import Config


def scopes_for_backend(backend: str) -> list[str]:
    """Graph and the IMAP/SMTP endpoints are different resources."""
    return list(OUTLOOK_SCOPES if backend == "imap" else GRAPH_SCOPES)


class AuthSession:
    """Builds the auth services for one CLI invocation from an explicit config.

    MSAL fetches the authority's OpenID configuration while the application
    is constructed, so an unreachable identity provider surfaces here as an
    ``AuthError`` rather than on the first token call.
    """

    def __init__(
        self,
        config: Config,
        app: Any = None,
        store: TokenStore | None = None,
        http_client: Any = None,
    ):
        self.config = config
        self.store = store or TokenStore(config.cache_path)
        self.cache = PersistentTokenCache(self.store)
        self.scopes = scopes_for_backend(config.backend)
        self.app = app or self._build_app(http_client)
        self.manager = TokenManager(self.app, self.cache, self.store, scopes=self.scopes)
        self.authenticator = DeviceCodeAuthenticator(self.app, self.cache, self.store, scopes=self.scopes)

    def _build_app(self, http_client: Any) -> msal.PublicClientApplication:
        try:
            return msal.PublicClientApplication(
                self.config.client_id,
                authority=self.config.authority,
                token_cache=self.cache,
                timeout=self.config.http_timeout,
                http_client=http_client,
            )
        except requests.RequestException as exc:
            raise AuthError(
                "Cannot reach the identity provider", cause=exc, remediation=RETRY_LATER
            ) from exc
        except ValueError as exc:
            raise AuthError(
                f"Authority {self.config.authority} is not usable", cause=exc, remediation=RETRY_LATER
            ) from exc
