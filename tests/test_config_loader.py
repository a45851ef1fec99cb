import json

import pytest

from o365mail.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    get_value,
    load_config,
    save_config,
    set_value,
    snake_to_camel,
)
from o365mail.config.schema import Config


def test_camel_to_snake_basic() -> None:
    assert camel_to_snake("clientId") == "client_id"
    assert camel_to_snake("currentAccount") == "current_account"


def test_snake_to_camel_basic() -> None:
    assert snake_to_camel("client_id") == "clientId"
    assert snake_to_camel("http_timeout") == "httpTimeout"


def test_convert_keys_nested() -> None:
    data = {
        "clientId": "xxx",
        "servers": {"imapPort": 993},
        "accounts": [{"addedAt": "2024-01-01"}],
    }
    out = convert_keys(data)
    assert out["client_id"] == "xxx"
    assert out["servers"]["imap_port"] == 993
    assert out["accounts"][0]["added_at"] == "2024-01-01"


def test_convert_to_camel_nested() -> None:
    data = {
        "client_id": "xxx",
        "servers": {"imap_port": 993},
        "accounts": [{"added_at": "2024-01-01"}],
    }
    out = convert_to_camel(data)
    assert out["clientId"] == "xxx"
    assert out["servers"]["imapPort"] == 993
    assert out["accounts"][0]["addedAt"] == "2024-01-01"


def test_missing_file_gives_defaults(tmp_path) -> None:
    config = load_config(tmp_path / "config.json", env={})

    assert config.backend == "graph"
    assert config.imap_port == 993
    assert config.current_account == ""


def test_file_values_are_read_from_camel_case(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"currentAccount": "alice@contoso.com", "backend": "imap", "smtpPort": 25}))

    config = load_config(path, env={})

    assert config.current_account == "alice@contoso.com"
    assert config.backend == "imap"
    assert config.smtp_port == 25


def test_environment_overrides_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"backend": "imap", "imapServer": "imap.example.com"}))

    config = load_config(path, env={"O365_BACKEND": "graph", "O365_CACHE_DIR": str(tmp_path / "c")})

    assert config.backend == "graph"
    assert config.imap_server == "imap.example.com"
    assert config.cache_path == tmp_path / "c"


def test_invalid_json_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")

    config = load_config(path, env={"O365_CURRENT_ACCOUNT": "bob@contoso.com"})

    assert config.backend == "graph"
    assert config.current_account == "bob@contoso.com"


def test_invalid_values_fall_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"backend": "pop3"}))

    assert load_config(path, env={}).backend == "graph"


def test_save_writes_camel_case(tmp_path) -> None:
    path = tmp_path / "nested" / "config.json"
    config = Config(current_account="alice@contoso.com", cache_dir=str(tmp_path))

    save_config(config, path)

    data = json.loads(path.read_text())
    assert data["currentAccount"] == "alice@contoso.com"
    assert "current_account" not in data
    assert load_config(path, env={}).current_account == "alice@contoso.com"


def test_set_and_get_value(tmp_path) -> None:
    config = Config(cache_dir=str(tmp_path))

    updated = set_value(config, "imapPort", "1993")

    assert updated.imap_port == 1993
    assert get_value(updated, "imap-port") == 1993
    assert config.imap_port == 993


def test_set_unknown_key(tmp_path) -> None:
    with pytest.raises(ValueError, match="Unknown config key"):
        set_value(Config(cache_dir=str(tmp_path)), "color", "blue")


def test_set_rejects_invalid_value(tmp_path) -> None:
    with pytest.raises(ValueError):
        set_value(Config(cache_dir=str(tmp_path)), "backend", "pop3")
    with pytest.raises(ValueError):
        set_value(Config(cache_dir=str(tmp_path)), "client_id", "  ")
