"""
State Store — Persisted run status, rolling event log, and secure key.

Everything an operator can observe about the synchronization job lives here:
the coarse run status (idle / running / stopped), the most recent log lines,
and the ZC Portal secure key. The job, the CLI triggers, and the scheduler may
run in different processes, so each value is kept in its own JSON document
under DATA_DIR and every mutation is a locked read-modify-write:

    data/
      sync_status.json   {"status": "running", "updated_at": "..."}
      sync_log.json      [{"timestamp": "...", "message": "..."}, ...]
      settings.json      {"secure_key": "..."}
      sync.lock          held by the active run (see RunLock)

Writes go to a temporary file that is fsynced and then renamed over the
target, so a reader never sees a half-written document. The log is a bounded
ring buffer: appending beyond MAX_LOG_ENTRIES drops the oldest entries, and the
whole buffer is persisted on every append so a crash never loses what the
operator has already seen.

Pipeline context:
    Read and written by every other component. The orchestrator flips the
    status at run start and end and polls it for stop requests; the catalog
    client and stock mapper append log lines; run.py serves the status query.
"""

import fcntl
import json
import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class RunStatus(Enum):
    """Coarse state of the synchronization job."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class LogEntry:
    timestamp: str
    message: str

    def __str__(self) -> str:
        return f"{self.timestamp} - {self.message}"

    def to_dict(self) -> Dict[str, str]:
        return {"timestamp": self.timestamp, "message": self.message}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LogEntry":
        return cls(timestamp=str(raw.get("timestamp", "")), message=str(raw.get("message", "")))


class JsonDocument:
    """A single JSON file guarded by an flock on a sibling .lock file.

    Attributes:
        path: Location of the JSON document.
        default_factory: Produces the value served when the file is missing,
            empty, or corrupt.
    """

    def __init__(self, path: Path, default_factory: Callable[[], Any]):
        self.path = path
        self.default_factory = default_factory
        self.lock_path = path.with_name(f"{path.name}.lock")

    def read(self) -> Any:
        lock_file = self._acquire_lock(shared=True)
        try:
            return self._load()
        finally:
            self._release_lock(lock_file)

    def write(self, data: Any) -> None:
        lock_file = self._acquire_lock(shared=False)
        try:
            self._dump(data)
        finally:
            self._release_lock(lock_file)

    def update(self, mutate: Callable[[Any], Any]) -> Any:
        """Apply mutate() to the current value and persist its result atomically.

        The exclusive lock is held across the read and the write, so two
        processes updating the same document never lose each other's change.

        Returns:
            The value returned by mutate(), as persisted.
        """
        lock_file = self._acquire_lock(shared=False)
        try:
            value = mutate(self._load())
            self._dump(value)
            return value
        finally:
            self._release_lock(lock_file)

    def _acquire_lock(self, shared: bool):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = open(self.lock_path, "a+", encoding="utf-8")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_SH if shared else fcntl.LOCK_EX)
        except OSError:
            lock_file.close()
            raise
        return lock_file

    @staticmethod
    def _release_lock(lock_file) -> None:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            lock_file.close()

    def _load(self) -> Any:
        if not self.path.exists():
            return self.default_factory()
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return self.default_factory()
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            corrupt_path = self.path.with_name(f"{self.path.name}.corrupt.{int(time.time())}")
            logger.warning("State file %s is corrupt; moved to %s", self.path, corrupt_path)
            os.replace(self.path, corrupt_path)
            return self.default_factory()

    def _dump(self, data: Any) -> None:
        tmp_path = self.path.with_name(f"{self.path.name}.tmp.{os.getpid()}")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)


class RunLock:
    """Single-slot lock that keeps two synchronization runs from overlapping.

    Combines a process-local threading.Lock (two threads of one process) with
    a non-blocking flock on a lock file (two processes, e.g. the scheduler and
    a manual `run.py sync`). acquire() never waits: a second caller is told
    the slot is taken and decides what to do about it.
    """

    def __init__(self, path: Path):
        self.path = path
        self._thread_lock = threading.Lock()
        self._handle = None

    def acquire(self) -> bool:
        if not self._thread_lock.acquire(blocking=False):
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.path, "a+", encoding="utf-8")
        except OSError:
            self._thread_lock.release()
            raise
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            self._thread_lock.release()
            return False
        self._handle = handle
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
            self._thread_lock.release()

    @property
    def locked(self) -> bool:
        return self._handle is not None


class StateStore:
    """File-backed status, bounded log, and credential store.

    Attributes:
        data_dir: Directory holding the state documents.
        max_entries: Maximum number of log entries kept (oldest dropped first).
        run_lock: The RunLock shared by every orchestrator using this store.
    """

    def __init__(self, data_dir, max_entries: int = 100):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.data_dir = Path(data_dir)
        self.max_entries = max_entries
        self._status = JsonDocument(self.data_dir / "sync_status.json", dict)
        self._log = JsonDocument(self.data_dir / "sync_log.json", list)
        self._settings = JsonDocument(self.data_dir / "settings.json", dict)
        self.run_lock = RunLock(self.data_dir / "sync.lock")

    # Status -----------------------------------------------------------

    def get_status(self) -> RunStatus:
        document = self._status.read()
        raw = document.get("status", RunStatus.IDLE.value) if isinstance(document, dict) else None
        try:
            return RunStatus(raw)
        except ValueError:
            logger.warning("Unknown run status %r in %s; treating as idle", raw, self.data_dir)
            return RunStatus.IDLE

    def set_status(self, status: RunStatus) -> None:
        self._status.write({
            "status": status.value,
            "updated_at": datetime.now().strftime(TIMESTAMP_FORMAT),
        })

    def reset_status_to_idle(self) -> None:
        self.set_status(RunStatus.IDLE)

    # Log --------------------------------------------------------------

    def append_log(self, message: str) -> LogEntry:
        """Append a timestamped entry and persist the whole bounded log.

        Entries are mirrored to the Python logger: messages starting with
        "ERROR" at ERROR level, everything else at INFO.
        """
        entry = LogEntry(timestamp=datetime.now().strftime(TIMESTAMP_FORMAT), message=message)

        def _append(raw):
            entries = deque(raw if isinstance(raw, list) else [], maxlen=self.max_entries)
            entries.append(entry.to_dict())
            return list(entries)

        self._log.update(_append)
        logger.log(logging.ERROR if message.startswith("ERROR") else logging.INFO, message)
        return entry

    def read_log(self) -> List[LogEntry]:
        """All retained entries, oldest first."""
        raw = self._log.read()
        if not isinstance(raw, list):
            return []
        return [LogEntry.from_dict(item) for item in raw if isinstance(item, dict)]

    def read_recent_log(self, n: int = 20) -> List[LogEntry]:
        """The n most recent entries, newest first."""
        if n <= 0:
            return []
        return list(reversed(self.read_log()))[:n]

    def clear_log(self) -> None:
        self._log.write([])

    # Credentials ------------------------------------------------------

    def get_secure_key(self) -> str:
        settings = self._settings.read()
        if not isinstance(settings, dict):
            return ""
        return str(settings.get("secure_key") or "")

    def set_secure_key(self, secure_key: str) -> None:
        def _set(raw):
            settings = raw if isinstance(raw, dict) else {}
            settings["secure_key"] = secure_key.strip()
            return settings

        self._settings.update(_set)
        os.chmod(self._settings.path, 0o600)
