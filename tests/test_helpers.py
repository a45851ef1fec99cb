from datetime import timedelta

import pytest
import requests

from o365mail.auth.constants import GRAPH_SCOPES, OUTLOOK_SCOPES
from o365mail.auth.errors import RETRY_LATER, AuthError
from o365mail.auth.session import AuthSession, scopes_for_backend
from o365mail.config.schema import Config
from o365mail.mail import GraphBackend, IMAPBackend, create_backend
from o365mail.utils.helpers import parse_address, parse_duration, truncate


@pytest.mark.parametrize(
    "value,expected",
    [
        ("30m", timedelta(minutes=30)),
        ("12h", timedelta(hours=12)),
        ("7d", timedelta(days=7)),
        ("2W", timedelta(weeks=2)),
    ],
)
def test_parse_duration(value, expected) -> None:
    assert parse_duration(value) == expected


def test_parse_duration_rejects_garbage() -> None:
    with pytest.raises(ValueError, match="Invalid duration"):
        parse_duration("yesterday")


def test_parse_address_and_truncate() -> None:
    assert parse_address("Bob Smith <bob@contoso.com>") == "bob@contoso.com"
    assert parse_address(" bob@contoso.com ") == "bob@contoso.com"
    assert truncate("short", 10) == "short"
    assert truncate("a long subject line", 10) == "a long ..."


def test_scopes_follow_backend() -> None:
    assert scopes_for_backend("graph") == GRAPH_SCOPES
    assert scopes_for_backend("imap") == OUTLOOK_SCOPES


def test_session_wires_store_under_cache_dir(tmp_path) -> None:
    config = Config(cache_dir=str(tmp_path / "cache"), backend="imap")
    app = object()

    session = AuthSession(config, app=app)

    assert session.app is app
    assert session.store.path == tmp_path / "cache" / "token.json"
    assert session.scopes == OUTLOOK_SCOPES
    assert session.cache.store is session.store
    assert session.manager.store is session.store


def test_create_backend_by_config(tmp_path) -> None:
    graph = create_backend(Config(cache_dir=str(tmp_path)), "alice@contoso.com", "tok")
    imap = create_backend(
        Config(cache_dir=str(tmp_path), backend="imap", imap_server="imap.example.com"),
        "alice@contoso.com",
        "tok",
    )

    assert isinstance(graph, GraphBackend)
    assert isinstance(imap, IMAPBackend)
    assert imap.server == "imap.example.com"
    graph.close()
    imap.close()


def test_session_reports_unreachable_identity_provider(tmp_path, unreachable_http) -> None:
    config = Config(cache_dir=str(tmp_path / "cache"))

    with pytest.raises(AuthError) as excinfo:
        AuthSession(config, http_client=unreachable_http)

    assert excinfo.value.remediation == RETRY_LATER
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
    assert "Cannot reach the identity provider" in str(excinfo.value)
