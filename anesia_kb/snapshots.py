"""
Two-tier snapshot cache.

- Index snapshot: listing projection of procedures plus specialty metadata (short TTL)
- Full snapshot: every entity type after merge and enrichment (longer TTL)

Snapshots are wrapped in a {"ts", "data"} envelope and persisted through a
SnapshotStore. The cache is advisory: write failures are swallowed and any
unreadable or expired record reads as a miss.
"""

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from .config import get_settings
from .errors import CacheReadFailure, CacheWriteFailure
from .normalize import project_procedure_index
from .state import FullSnapshot, IndexSnapshot

logger = logging.getLogger(__name__)

INDEX_CACHE_KEY = "anesia-data-index-v1"
FULL_CACHE_KEY = "anesia-data-full-v1"

FULL_SNAPSHOT_KEYS = ("procedures", "drugs", "guidelines", "protocols", "regional_blocks", "specialties")
INDEX_SNAPSHOT_KEYS = ("procedures", "specialties")


class SnapshotStore(Protocol):
    """Persistent string key-value store with no transactional guarantees."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemorySnapshotStore:
    """In-process store, used by tests and short-lived sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqliteSnapshotStore:
    """Key-value table in a local sqlite file."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or get_settings().cache_db_path)

    def _connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("CREATE TABLE IF NOT EXISTS snapshots (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        return conn

    def get(self, key: str) -> Optional[str]:
        try:
            conn = self._connect()
            try:
                row = conn.execute("SELECT value FROM snapshots WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise CacheReadFailure(message=f"Snapshot read failed for {key}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO snapshots (key, value) VALUES (?, ?)",
                    (key, value),
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as e:
            raise CacheWriteFailure(message=f"Snapshot write failed for {key}: {e}") from e


def derive_index_from_full(full: FullSnapshot) -> IndexSnapshot:
    """Project a Full snapshot down to the Index shape."""
    return {
        "procedures": [project_procedure_index(procedure) for procedure in full.get("procedures") or []],
        "specialties": list(full.get("specialties") or []),
    }


def _has_keys(payload: Any, keys) -> bool:
    return isinstance(payload, dict) and all(isinstance(payload.get(key), list) for key in keys)


class SnapshotCache:
    """Read/write/derive operations over the Index and Full snapshots."""

    def __init__(
        self,
        store: SnapshotStore,
        index_ttl: Optional[float] = None,
        full_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self.store = store
        self.index_ttl = settings.index_ttl_seconds if index_ttl is None else index_ttl
        self.full_ttl = settings.full_ttl_seconds if full_ttl is None else full_ttl
        self.clock = clock

    # --- Envelope level ---

    def read(self, key: str, ttl: float) -> Optional[Any]:
        """Payload stored under key, or None if absent, unreadable or older than ttl."""
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.warning(f"Treating snapshot {key} as a miss: {e}")
            return None
        if not raw:
            return None

        try:
            envelope = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Snapshot {key} is not valid JSON, ignoring")
            return None

        if not isinstance(envelope, dict):
            return None
        ts = envelope.get("ts")
        if isinstance(ts, bool) or not isinstance(ts, (int, float)) or ts <= 0:
            return None
        if self.clock() - ts > ttl:
            return None
        return envelope.get("data")

    def write(self, key: str, payload: Any) -> bool:
        """Persist payload with the current timestamp. Returns False instead of raising on failure."""
        try:
            raw = json.dumps({"ts": self.clock(), "data": payload}, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.warning(f"Snapshot {key} could not be serialized: {e}")
            return False

        try:
            self.store.set(key, raw)
        except Exception as e:
            logger.warning(f"Snapshot {key} was not persisted: {e}")
            return False
        return True

    # --- Snapshot level ---

    def read_full(self) -> Optional[FullSnapshot]:
        payload = self.read(FULL_CACHE_KEY, self.full_ttl)
        return payload if _has_keys(payload, FULL_SNAPSHOT_KEYS) else None

    def read_index(self) -> Optional[IndexSnapshot]:
        """Dedicated Index snapshot, else one derived from a still-valid Full snapshot."""
        payload = self.read(INDEX_CACHE_KEY, self.index_ttl)
        if _has_keys(payload, INDEX_SNAPSHOT_KEYS):
            return payload

        full = self.read_full()
        if full is None:
            return None
        return derive_index_from_full(full)

    def write_index(self, snapshot: IndexSnapshot) -> bool:
        return self.write(INDEX_CACHE_KEY, snapshot)

    def write_full(self, snapshot: FullSnapshot) -> bool:
        """Write the Full snapshot and, when that succeeds, the Index derived from it."""
        if not self.write(FULL_CACHE_KEY, snapshot):
            return False
        self.write_index(derive_index_from_full(snapshot))
        return True
