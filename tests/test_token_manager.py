import threading
import time

import pytest

from o365mail.auth.errors import (
    RETRY_LATER,
    AccountNotFoundError,
    AuthCancelledError,
    AuthError,
    NotLoggedInError,
    RefreshFailedError,
)
from o365mail.auth.manager import TokenManager
from o365mail.auth.models import AuthState
from o365mail.auth.storage import TokenStore


@pytest.fixture
def manager(fake_app, cache, store) -> TokenManager:
    return TokenManager(fake_app, cache, store)


def test_unknown_account_is_not_logged_in(manager) -> None:
    with pytest.raises(NotLoggedInError) as excinfo:
        manager.get_access_token("nobody@contoso.com")

    assert "No token found for nobody@contoso.com" in str(excinfo.value)


def test_empty_cache_with_empty_filter(manager) -> None:
    with pytest.raises(NotLoggedInError) as excinfo:
        manager.get_access_token("")

    assert "No valid token found" in str(excinfo.value)


def test_valid_token_is_returned_without_refresh(manager, fake_app, add_account) -> None:
    add_account("alice@contoso.com", expires_in=3600)

    token = manager.get_token("alice@contoso.com")

    assert token.access_token == "at-alice@contoso.com"
    assert token.account == "alice@contoso.com"
    assert token.expires_at.timestamp() > time.time() + 3000
    assert fake_app.refresh_count == 0


def test_expiring_token_is_refreshed_and_persisted(manager, fake_app, add_account, store, make_cache) -> None:
    add_account("alice@contoso.com", expires_in=60)

    token = manager.get_access_token("alice@contoso.com")

    assert token == "at-alice@contoso.com-1"
    assert fake_app.refresh_count == 1
    reloaded = make_cache()
    TokenStore(store.cache_dir).replace(reloaded)
    assert reloaded.accounts["alice@contoso.com"]["access_token"] == "at-alice@contoso.com-1"


def test_refresh_without_refresh_token_fails(manager, add_account) -> None:
    add_account("alice@contoso.com", expires_in=-10, refresh_token="")

    with pytest.raises(RefreshFailedError) as excinfo:
        manager.get_access_token("alice@contoso.com")

    assert excinfo.value.cause == "no refresh token in cache"


def test_refresh_error_keeps_identity_provider_details(manager, fake_app, add_account) -> None:
    add_account("alice@contoso.com")
    fake_app.silent_error = {"error": "invalid_grant", "error_description": "AADSTS70043: token expired"}

    with pytest.raises(RefreshFailedError) as excinfo:
        manager.get_access_token("alice@contoso.com")

    assert "invalid_grant" in str(excinfo.value.cause)
    assert "AADSTS70043" in str(excinfo.value)
    assert "auth login" in str(excinfo.value)


def test_network_error_during_refresh(manager, fake_app, add_account, network_error) -> None:
    add_account("alice@contoso.com")
    fake_app.network_error = network_error

    with pytest.raises(RefreshFailedError) as excinfo:
        manager.get_access_token("alice@contoso.com")

    assert excinfo.value.__cause__ is network_error
    assert excinfo.value.remediation == RETRY_LATER


def test_accounts_are_isolated(manager, add_account) -> None:
    add_account("alice@contoso.com")
    add_account("bob@contoso.com")

    assert manager.get_access_token("bob@contoso.com") == "at-bob@contoso.com"

    manager.logout("alice@contoso.com")

    assert manager.list_accounts() == ["bob@contoso.com"]
    assert manager.get_access_token("bob@contoso.com") == "at-bob@contoso.com"
    with pytest.raises(NotLoggedInError):
        manager.get_access_token("alice@contoso.com")


def test_empty_filter_selects_first_account(manager, add_account) -> None:
    add_account("alice@contoso.com")
    add_account("bob@contoso.com")

    assert manager.get_token("").account == "alice@contoso.com"


def test_logout_unknown_account(manager, add_account, store) -> None:
    add_account("alice@contoso.com")
    before = store.load()

    with pytest.raises(AccountNotFoundError) as excinfo:
        manager.logout("nobody@contoso.com")

    assert "Account nobody@contoso.com not found" in str(excinfo.value)
    assert store.load() == before


def test_logout_persists_removal(manager, add_account, store, make_cache) -> None:
    add_account("alice@contoso.com")

    manager.logout("alice@contoso.com")

    reloaded = make_cache()
    TokenStore(store.cache_dir).replace(reloaded)
    assert reloaded.accounts == {}


def test_logout_all_deletes_cache_file(manager, add_account, store) -> None:
    add_account("alice@contoso.com")
    add_account("bob@contoso.com")

    manager.logout_all()

    assert manager.list_accounts() == []
    assert not store.path.exists()


def test_cancelled_lookup(manager, add_account, fake_app) -> None:
    add_account("alice@contoso.com", expires_in=60)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(AuthCancelledError):
        manager.get_access_token("alice@contoso.com", cancel=cancel)

    assert fake_app.refresh_count == 0


def test_explicit_scopes_are_forwarded(manager, fake_app, add_account) -> None:
    add_account("alice@contoso.com")

    manager.get_token("alice@contoso.com", scopes=["https://outlook.office.com/SMTP.Send"])

    assert fake_app.last_scopes == ["https://outlook.office.com/SMTP.Send"]


def test_status_for_each_state(manager, fake_app, add_account) -> None:
    add_account("alice@contoso.com")

    assert manager.get_status("nobody@contoso.com").state is AuthState.NOT_LOGGED_IN
    assert not manager.get_status("nobody@contoso.com").logged_in

    valid = manager.get_status("alice@contoso.com")
    assert valid.state is AuthState.VALID
    assert valid.expires_at is not None

    fake_app.silent_error = {"error": "invalid_grant"}
    expired = manager.get_status("alice@contoso.com")
    assert expired.state is AuthState.EXPIRED
    assert expired.logged_in
    assert expired.error == "invalid_grant"


def test_all_statuses(manager, add_account) -> None:
    add_account("alice@contoso.com")
    add_account("bob@contoso.com")

    statuses = manager.get_all_statuses()

    assert [s.account for s in statuses] == ["alice@contoso.com", "bob@contoso.com"]
    assert all(s.state is AuthState.VALID for s in statuses)


def test_detailed_status_for_cached_account(manager, add_account, store) -> None:
    add_account("alice@contoso.com")

    detail = manager.get_detailed_status("alice@contoso.com")

    assert detail.found
    assert detail.silent_refresh_ok
    assert detail.cached_accounts == 1
    assert detail.has_cached_token
    assert detail.cache_file == str(store.path)
    assert detail.cache_size > 0
    assert detail.last_error == ""


def test_detailed_status_for_missing_account(manager, add_account) -> None:
    add_account("alice@contoso.com")

    detail = manager.get_detailed_status("nobody@contoso.com")

    assert not detail.found
    assert not detail.silent_refresh_ok
    assert "not found" in detail.last_error


def test_detailed_status_reports_refresh_error(manager, fake_app, add_account) -> None:
    add_account("alice@contoso.com")
    fake_app.silent_error = {"error": "interaction_required", "error_description": "consent revoked"}

    detail = manager.get_detailed_status("alice@contoso.com")

    assert detail.found
    assert not detail.silent_refresh_ok
    assert detail.last_error == "interaction_required: consent revoked"


def test_cancelled_status_lookups_skip_refresh(manager, add_account, fake_app) -> None:
    add_account("alice@contoso.com", expires_in=60)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(AuthCancelledError):
        manager.get_status("alice@contoso.com", cancel=cancel)
    with pytest.raises(AuthCancelledError):
        manager.get_all_statuses(cancel=cancel)
    with pytest.raises(AuthCancelledError):
        manager.get_detailed_status("alice@contoso.com", cancel=cancel)

    assert fake_app.refresh_count == 0


def test_status_of_unknown_account_ignores_cancel(manager, add_account) -> None:
    add_account("alice@contoso.com")
    cancel = threading.Event()
    cancel.set()

    status = manager.get_status("nobody@contoso.com", cancel=cancel)

    assert status.state is AuthState.NOT_LOGGED_IN


def test_account_listing_network_error(manager, fake_app, monkeypatch, network_error) -> None:
    def unreachable():
        raise network_error

    monkeypatch.setattr(fake_app, "get_accounts", unreachable)

    with pytest.raises(AuthError) as excinfo:
        manager.list_accounts()

    assert excinfo.value.remediation == RETRY_LATER
    assert excinfo.value.__cause__ is network_error
