from __future__ import annotations

from pathlib import Path
from typing import Protocol

from sqlitedict import SqliteDict  # type: ignore


class ClientStorage(Protocol):
    """
    Durable string key/value storage for client state (access token, auth markers).
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class SqliteStorage:
    """
    SqliteDict-backed storage; one file per client profile.

    Handles are opened and closed per operation so several clients (or processes)
    can share the same file.
    """

    def __init__(self, path: Path, *, table: str = "client_state") -> None:
        self.path = Path(path)
        self.table = str(table)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _db(self) -> SqliteDict:
        return SqliteDict(str(self.path), tablename=self.table, autocommit=True)

    def get(self, key: str) -> str | None:
        with self._db() as db:
            v = db.get(str(key))
        return None if v is None else str(v)

    def set(self, key: str, value: str) -> None:
        with self._db() as db:
            db[str(key)] = str(value)

    def delete(self, key: str) -> None:
        with self._db() as db:
            if str(key) in db:
                del db[str(key)]


class MemoryStorage:
    """Process-local storage (nothing survives a restart)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(str(key))

    def set(self, key: str, value: str) -> None:
        self._data[str(key)] = str(value)

    def delete(self, key: str) -> None:
        self._data.pop(str(key), None)
