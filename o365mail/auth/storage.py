"""Token cache persistence.

The MSAL token cache is stored as one opaque blob per profile. Writes go
through a temp file and ``os.replace`` so a crash never leaves a truncated
cache behind. There is no cross-process lock: two CLI invocations writing at
the same time race, and the last writer wins.
"""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

import msal
from loguru import logger

from o365mail.auth.constants import DIR_PERMISSION, FILE_PERMISSION, TOKEN_FILENAME
from o365mail.auth.errors import PersistenceError
from o365mail.utils.helpers import get_data_path


class SerializableCache(Protocol):
    """The subset of ``msal.SerializableTokenCache`` the store relies on."""

    has_state_changed: bool

    def serialize(self) -> str: ...

    def deserialize(self, state: str) -> Any: ...


class TokenStore:
    """File-backed storage for the serialized token cache."""

    def __init__(self, cache_dir: str | Path | None = None):
        self._cache_dir = Path(cache_dir).expanduser() if cache_dir else get_data_path()
        self._lock = threading.RLock()
        self._data = self._read()

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def path(self) -> Path:
        return self._cache_dir / TOKEN_FILENAME

    def _read(self) -> bytes:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as exc:
            raise PersistenceError(f"Failed to read token file {self.path}", cause=exc) from exc

    def load(self) -> bytes:
        """Return the blob read at construction (or saved since)."""
        with self._lock:
            return self._data

    def save(self, data: bytes) -> None:
        """Replace the stored blob."""
        with self._lock:
            self._write(data)
            self._data = data

    def _write(self, data: bytes) -> None:
        try:
            self._cache_dir.mkdir(mode=DIR_PERMISSION, parents=True, exist_ok=True)
            os.chmod(self._cache_dir, DIR_PERMISSION)
        except OSError as exc:
            raise PersistenceError(
                f"Failed to create cache directory {self._cache_dir}", cause=exc
            ) from exc

        tmp_path: str | None = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._cache_dir, prefix=".token-", suffix=".tmp")
            with os.fdopen(fd, "wb") as fp:
                fp.write(data)
                fp.flush()
                os.fsync(fp.fileno())
            os.chmod(tmp_path, FILE_PERMISSION)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as exc:
            raise PersistenceError(f"Failed to write token file {self.path}", cause=exc) from exc
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
        logger.debug(f"Token cache written to {self.path} ({len(data)} bytes)")

    def clear(self) -> None:
        """Delete the token file. A missing file is fine."""
        with self._lock:
            self._data = b""
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise PersistenceError(f"Failed to remove token file {self.path}", cause=exc) from exc
        logger.debug(f"Token cache cleared at {self.path}")

    def export(self, cache: SerializableCache) -> None:
        """Serialize the cache and write it out."""
        with self._lock:
            self.save(cache.serialize().encode("utf-8"))
            cache.has_state_changed = False

    def replace(self, cache: SerializableCache) -> None:
        """Load the stored blob into the cache."""
        with self._lock:
            if not self._data:
                return
            cache.deserialize(self._data.decode("utf-8"))

    def flush(self, cache: SerializableCache) -> None:
        """Export the cache if it changed since the last export."""
        if getattr(cache, "has_state_changed", True):
            self.export(cache)

    def has_token(self) -> bool:
        with self._lock:
            return len(self._data) > 0

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except OSError:
            return 0


class PersistentTokenCache(msal.SerializableTokenCache):
    """MSAL cache that writes itself to a TokenStore on every mutation."""

    def __init__(self, store: TokenStore):
        super().__init__()
        self._store = store
        store.replace(self)

    @property
    def store(self) -> TokenStore:
        return self._store

    def add(self, event, **kwargs):  # type: ignore[override]
        super().add(event, **kwargs)
        self._store.export(self)

    def modify(self, credential_type, old_entry, new_key_value_pairs=None):  # type: ignore[override]
        super().modify(credential_type, old_entry, new_key_value_pairs)
        self._store.export(self)
