"""Durable storage for the single active-timer record."""

from __future__ import annotations

import fcntl
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from studytimer.core.clock import OPEN_END
from studytimer.core.errors import PersistenceError

log = logging.getLogger(__name__)

STORAGE_KEY = "activeSessionTimer"


class KeyValueStore(Protocol):
    """Minimal string key/value store, shaped like the browser storage API."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """Process-scoped store; contents vanish with the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStore:
    """Store each key as ``<directory>/<key>.json`` with file locking.

    Values are written verbatim, so whatever a caller stored (even text that
    is not JSON) is what a later read returns.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_SH)
            return f.read()

    def set_item(self, key: str, value: str) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        with open(self._path(key), "w", encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            f.write(value)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass(frozen=True)
class PersistedTimerRecord:
    """The durable description of the active timer."""

    session_id: Any
    start_time_iso: str
    end_time_iso: str | None

    def to_json(self) -> str:
        return json.dumps(
            {
                "sessionId": self.session_id,
                "startTimeISO": self.start_time_iso,
                "endTimeISO": self.end_time_iso,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> PersistedTimerRecord:
        """Parse *raw*; raises ``ValueError`` if it is not a well-formed record."""
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("timer record is not a JSON object")
        session_id = data.get("sessionId")
        if session_id is None or session_id == "" or isinstance(session_id, (bool, list, dict)):
            raise ValueError(f"timer record has no usable sessionId: {session_id!r}")
        start = data.get("startTimeISO")
        if not isinstance(start, str) or not start:
            raise ValueError(f"timer record has no startTimeISO: {start!r}")
        end = data.get("endTimeISO")
        if end is not None and not isinstance(end, str):
            raise ValueError(f"timer record has a non-string endTimeISO: {end!r}")
        return cls(session_id=session_id, start_time_iso=start, end_time_iso=end)

    @property
    def is_open_ended(self) -> bool:
        return self.end_time_iso is None or self.end_time_iso == OPEN_END


class PersistenceAdapter:
    """Reads and writes the one :class:`PersistedTimerRecord` under :data:`STORAGE_KEY`.

    ``load()`` never raises: anything unreadable is reported as "no record".
    ``save()`` and ``clear()`` raise :class:`PersistenceError` on I/O failure
    and leave the decision to log and carry on to the caller.
    """

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEY) -> None:
        self._store = store
        self._key = key

    def save(self, record: PersistedTimerRecord) -> None:
        """Write *record*, replacing any previous one."""
        try:
            self._store.set_item(self._key, record.to_json())
        except OSError as exc:
            raise PersistenceError(f"could not save timer record: {exc}") from exc
        log.debug(f"Saved timer record for session {record.session_id!r}")

    def load(self) -> PersistedTimerRecord | None:
        """Return the stored record, or ``None`` if absent or unusable."""
        try:
            raw = self._store.get_item(self._key)
        except (OSError, UnicodeDecodeError) as exc:
            log.warning(f"Could not read timer record: {exc}")
            return None
        if raw is None:
            return None
        try:
            return PersistedTimerRecord.from_json(raw)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError subclass
            log.warning(f"Ignoring malformed timer record: {exc}")
            return None

    def clear(self) -> None:
        """Remove the stored record; a no-op when there is none."""
        try:
            self._store.remove_item(self._key)
        except OSError as exc:
            raise PersistenceError(f"could not clear timer record: {exc}") from exc
