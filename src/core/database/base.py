"""
Case Warden - Persistence Backends
==================================

Load/save contract for the case store plus file, SQLite and memory
implementations.

DESIGN:
    The case store keeps its whole state in memory and writes it out in
    full after each mutation, so a backend only has to persist one JSON
    document. Backends are synchronous; the store calls them through
    asyncio.to_thread() so every save is a suspension point that does
    not block the event loop.

    Any I/O or decode failure surfaces as PersistenceError.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import copy
import json
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from src.core.config import Config
from src.core.constants import DB_CONNECTION_TIMEOUT, SQLITE_BUSY_TIMEOUT
from src.core.errors import PersistenceError
from src.core.logger import logger


State = Dict[str, Any]


# =============================================================================
# Contract
# =============================================================================

class StateBackend(ABC):
    """Durable substrate for the case store."""

    name: str = "backend"

    @abstractmethod
    def load(self) -> Optional[State]:
        """Return the stored state, or None when nothing was saved yet."""

    @abstractmethod
    def save(self, state: State) -> None:
        """Replace the stored state in full."""

    def close(self) -> None:
        pass


# =============================================================================
# Memory
# =============================================================================

class MemoryBackend(StateBackend):
    """Keeps a deep copy of the last saved state. Used in tests."""

    name = "memory"

    def __init__(self, initial: Optional[State] = None) -> None:
        self._state: Optional[State] = copy.deepcopy(initial)
        self.saves = 0

    def load(self) -> Optional[State]:
        return copy.deepcopy(self._state)

    def save(self, state: State) -> None:
        self._state = copy.deepcopy(state)
        self.saves += 1


# =============================================================================
# JSON File
# =============================================================================

class JsonFileBackend(StateBackend):
    """
    One JSON file, rewritten through a temp file and os.replace().

    A reader never sees a partially written document.
    """

    name = "json"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[State]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e

        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, ValueError) as e:
            raise PersistenceError(f"Corrupted case store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupted case store {self.path}: expected an object")
        return data

    def save(self, state: State) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(state, f, ensure_ascii=False, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e


# =============================================================================
# SQLite
# =============================================================================

class SqliteBackend(StateBackend):
    """
    Single-row JSON document in a WAL-mode SQLite table.

    DESIGN: WAL mode lets a dashboard process read the file while the
    bot writes. The connection is shared across worker threads and
    guarded by a threading lock.
    """

    name = "sqlite"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._db_lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                check_same_thread=False,
                timeout=DB_CONNECTION_TIMEOUT,
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA temp_store=MEMORY")
            conn.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT}")
            conn.execute(
                "CREATE TABLE IF NOT EXISTS moderation_state ("
                " id INTEGER PRIMARY KEY CHECK (id = 1),"
                " payload TEXT NOT NULL,"
                " updated_at REAL DEFAULT (strftime('%s','now'))"
                ")"
            )
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            logger.error("Case Store Database Connection Failed", [
                ("Path", str(self.path)),
                ("Error", str(e)),
            ])
            raise PersistenceError(f"Failed to open {self.path}: {e}") from e

        self._conn = conn
        return conn

    def load(self) -> Optional[State]:
        with self._db_lock:
            conn = self._connect()
            try:
                row = conn.execute("SELECT payload FROM moderation_state WHERE id = 1").fetchone()
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to read {self.path}: {e}") from e

        if row is None:
            return None
        try:
            data = json.loads(row[0])
        except (json.JSONDecodeError, ValueError) as e:
            raise PersistenceError(f"Corrupted case store row in {self.path}: {e}") from e
        return data if isinstance(data, dict) else None

    def save(self, state: State) -> None:
        try:
            payload = json.dumps(state, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Case store state is not serializable: {e}") from e

        with self._db_lock:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT INTO moderation_state (id, payload) VALUES (1, ?) "
                    "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, "
                    "updated_at = strftime('%s','now')",
                    (payload,),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(f"Failed to write {self.path}: {e}") from e

    def close(self) -> None:
        with self._db_lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                logger.info("Case Store Database Closed", [("Path", str(self.path))])


# =============================================================================
# Factory
# =============================================================================

def create_backend(config: Config) -> StateBackend:
    """Pick the backend named by Config.storage_backend."""
    if config.storage_backend == "sqlite":
        backend: StateBackend = SqliteBackend(config.cases_db)
    elif config.storage_backend == "memory":
        backend = MemoryBackend()
    else:
        backend = JsonFileBackend(config.cases_file)

    logger.tree("Case Store Backend Selected", [
        ("Backend", backend.name),
        ("Data Dir", str(config.data_dir)),
    ], emoji="🗄️")
    return backend


__all__ = [
    "State",
    "StateBackend",
    "MemoryBackend",
    "JsonFileBackend",
    "SqliteBackend",
    "create_backend",
]
