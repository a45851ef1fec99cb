"""Local registry of signed-in accounts.

The registry is bookkeeping for display and default-account selection. The
token cache decides whether an account is actually authenticated.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from loguru import logger

from o365mail.config.loader import convert_keys, convert_to_camel
from o365mail.config.schema import Config
from o365mail.utils.helpers import ensure_dir

ACCOUNTS_FILENAME = "accounts.json"
ACCOUNT_ENV = "O365_ACCOUNT"


@dataclass
class RegisteredAccount:
    email: str
    added_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    alias: str = ""


class AccountRegistry:
    """JSON file listing known accounts in the order they were added."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def for_config(cls, config: Config) -> "AccountRegistry":
        return cls(config.cache_path / ACCOUNTS_FILENAME)

    def load(self) -> list[RegisteredAccount]:
        if not self.path.exists():
            return []
        try:
            data = convert_keys(json.loads(self.path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, OSError) as e:
            raise ValueError(f"Failed to read accounts file {self.path}: {e}") from e
        accounts = []
        for item in data.get("accounts", []):
            if item.get("email"):
                accounts.append(
                    RegisteredAccount(
                        email=item["email"],
                        added_at=item.get("added_at", ""),
                        alias=item.get("alias", ""),
                    )
                )
        return accounts

    def save(self, accounts: list[RegisteredAccount]) -> None:
        payload = convert_to_camel({"accounts": [asdict(acc) for acc in accounts]})
        try:
            ensure_dir(self.path.parent)
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise ValueError(f"Failed to write accounts file {self.path}: {e}") from e

    def add(self, email: str) -> None:
        """Add an account, or refresh its timestamp if already present."""
        accounts = self.load()
        now = datetime.now(timezone.utc).isoformat()
        for acc in accounts:
            if acc.email == email:
                acc.added_at = now
                break
        else:
            accounts.append(RegisteredAccount(email=email, added_at=now))
        self.save(accounts)
        logger.debug(f"Registered account {email}")

    def remove(self, email: str) -> None:
        self.save([acc for acc in self.load() if acc.email != email])

    def remove_all(self) -> None:
        self.save([])

    def exists(self, email: str) -> bool:
        return any(acc.email == email for acc in self.load())

    def first(self) -> str:
        accounts = self.load()
        return accounts[0].email if accounts else ""


def resolve_active_account(
    config: Config,
    registry: AccountRegistry,
    account_flag: str | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Pick the account to use: flag, then O365_ACCOUNT, then config, then registry."""
    if account_flag:
        return account_flag
    env = os.environ if env is None else env
    if env.get(ACCOUNT_ENV):
        return env[ACCOUNT_ENV]
    if config.current_account:
        return config.current_account
    try:
        return registry.first()
    except ValueError as e:
        logger.warning(str(e))
        return ""
