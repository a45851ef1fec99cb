import json
import os
import time
from types import SimpleNamespace
from typing import Any

import pytest
import requests

from o365mail.auth.storage import TokenStore


class FakeCache:
    """Stands in for msal.SerializableTokenCache: accounts keyed by username."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any]] = {}
        self.has_state_changed = False

    def serialize(self) -> str:
        return json.dumps(self.accounts)

    def deserialize(self, state: str) -> None:
        self.accounts = json.loads(state) if state else {}
        self.has_state_changed = False


class FakeApp:
    """The slice of msal.PublicClientApplication the auth package calls."""

    def __init__(self, cache: FakeCache) -> None:
        self.cache = cache
        self.refresh_count = 0
        self.silent_error: dict[str, Any] | None = None
        self.network_error: Exception | None = None
        self.start_error: Exception | None = None
        self.start_response: dict[str, Any] | None = None
        self.flow_expires_in = 900
        self.device_outcome: Any = "success"
        self.device_user = "user@contoso.com"
        self.last_scopes: list[str] = []

    def get_accounts(self) -> list[dict[str, Any]]:
        return [{"username": name, "home_account_id": f"uid.{name}"} for name in self.cache.accounts]

    def acquire_token_silent_with_error(self, scopes, account):
        self.last_scopes = list(scopes)
        if self.network_error is not None:
            raise self.network_error
        if self.silent_error is not None:
            return dict(self.silent_error)
        entry = self.cache.accounts.get(account["username"])
        if entry is None:
            return None
        if entry["expires_on"] < time.time() + 300:
            if not entry.get("refresh_token"):
                return None
            self.refresh_count += 1
            entry["access_token"] = f"at-{account['username']}-{self.refresh_count}"
            entry["expires_on"] = time.time() + 3600
            self.cache.has_state_changed = True
        return {
            "access_token": entry["access_token"],
            "token_type": "Bearer",
            "expires_on": str(int(entry["expires_on"])),
        }

    def remove_account(self, account) -> None:
        self.cache.accounts.pop(account["username"], None)
        self.cache.has_state_changed = True

    def initiate_device_flow(self, scopes):
        self.last_scopes = list(scopes)
        if self.start_error is not None:
            raise self.start_error
        if self.start_response is not None:
            return dict(self.start_response)
        return {
            "user_code": "ABCD-1234",
            "device_code": "device-code",
            "verification_uri": "https://microsoft.com/devicelogin",
            "expires_in": self.flow_expires_in,
            "expires_at": time.time() + self.flow_expires_in,
            "interval": 5,
            "message": "To sign in, use a web browser to open the page "
            "https://microsoft.com/devicelogin and enter the code ABCD-1234",
        }

    def acquire_token_by_device_flow(self, flow, exit_condition=None):
        outcome = self.device_outcome
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, dict):
            return dict(outcome)
        if outcome == "hang":
            while not exit_condition(flow):
                time.sleep(0.01)
            return {"error": "authorization_pending", "error_description": "polling stopped"}
        if outcome == "no_account":
            return {"access_token": "at-anon", "expires_in": 3600}

        self.cache.accounts[self.device_user] = {
            "access_token": "at-device",
            "refresh_token": "rt-device",
            "expires_on": time.time() + 3600,
        }
        self.cache.has_state_changed = True
        return {
            "access_token": "at-device",
            "token_type": "Bearer",
            "expires_in": 3600,
            "id_token_claims": {"preferred_username": self.device_user},
        }


@pytest.fixture
def store(tmp_path) -> TokenStore:
    return TokenStore(tmp_path / "cache")


@pytest.fixture
def cache(store) -> FakeCache:
    c = FakeCache()
    store.replace(c)
    return c


@pytest.fixture
def fake_app(cache) -> FakeApp:
    return FakeApp(cache)


@pytest.fixture
def make_cache():
    return FakeCache


@pytest.fixture
def make_app():
    return FakeApp


@pytest.fixture
def add_account(cache, store):
    """Seed a cached account and persist it like a completed login would."""

    def _add(username: str, expires_in: int = 3600, refresh_token: str = "rt") -> None:
        cache.accounts[username] = {
            "access_token": f"at-{username}",
            "refresh_token": refresh_token,
            "expires_on": time.time() + expires_in,
        }
        store.export(cache)

    return _add


@pytest.fixture
def network_error():
    return requests.ConnectionError("connection reset by peer")


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate HOME and drop O365_* overrides from the environment."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in list(os.environ):
        if name.startswith("O365_"):
            monkeypatch.delenv(name, raising=False)
    return tmp_path


OPENID_CONFIGURATION = {
    "authorization_endpoint": "https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
    "token_endpoint": "https://login.microsoftonline.com/common/oauth2/v2.0/token",
    "device_authorization_endpoint": "https://login.microsoftonline.com/common/oauth2/v2.0/devicecode",
    "issuer": "https://login.microsoftonline.com/{tenantid}/v2.0",
}

INSTANCE_DISCOVERY = {
    "metadata": [
        {
            "preferred_network": "login.microsoftonline.com",
            "preferred_cache": "login.windows.net",
            "aliases": [
                "login.microsoftonline.com",
                "login.windows.net",
                "login.microsoft.com",
                "sts.windows.net",
            ],
        }
    ],
}


class OfflineHttpClient:
    """HTTP client handed to MSAL: serves the authority metadata, nothing else."""

    def __init__(self) -> None:
        self.requests: list[str] = []

    def get(self, url, **kwargs):
        self.requests.append(url)
        if "/discovery/instance" in url:
            return SimpleNamespace(status_code=200, text=json.dumps(INSTANCE_DISCOVERY), headers={})
        return SimpleNamespace(status_code=200, text=json.dumps(OPENID_CONFIGURATION), headers={})

    def post(self, url, **kwargs):
        self.requests.append(url)
        raise requests.ConnectionError(f"unexpected token request to {url}")

    def close(self) -> None:
        pass


class UnreachableHttpClient:
    def get(self, url, **kwargs):
        raise requests.ConnectionError("connection refused")

    post = get

    def close(self) -> None:
        pass


@pytest.fixture
def offline_http() -> OfflineHttpClient:
    return OfflineHttpClient()


@pytest.fixture
def unreachable_http() -> UnreachableHttpClient:
    return UnreachableHttpClient()
