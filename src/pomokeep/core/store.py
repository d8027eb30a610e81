"""State Store: durable JSON persistence for the timer snapshot."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from pomokeep.core.snapshot import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "pomokeep"
STATE_FILE = "state.json"
STATE_KEY = "timer_state"


class StoreError(Exception):
    """Raised when persisted state cannot be read."""


class JsonFile:
    """A JSON document replaced atomically under an ``fcntl`` lock.

    Writers take an exclusive lock on a sidecar ``.lock`` file, write to a
    temporary file in the same directory and ``os.replace`` it over the
    target.  Readers take a shared lock, so they see either the previous
    document or the new one, never a partial write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock_path = path.with_name(path.name + ".lock")
        self._held = False

    @contextmanager
    def _locked(self, mode: int) -> Iterator[None]:
        if self._held:
            # already inside this instance's transaction
            yield
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "a") as lock:
            fcntl.flock(lock, mode)
            self._held = True
            try:
                yield
            finally:
                self._held = False
                fcntl.flock(lock, fcntl.LOCK_UN)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the exclusive lock across a whole load-modify-dump cycle."""
        with self._locked(fcntl.LOCK_EX):
            yield

    def load(self) -> Optional[dict[str, Any]]:
        """Return the stored document, or ``None`` if nothing was written yet."""
        if not self.path.exists():
            return None
        with self._locked(fcntl.LOCK_SH):
            try:
                with open(self.path) as f:
                    data = json.load(f)
            except FileNotFoundError:
                return None
            except (OSError, ValueError) as exc:
                raise StoreError(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"cannot read {self.path}: expected an object")
        return data

    def dump(self, data: dict[str, Any]) -> None:
        """Replace the stored document with *data*."""
        with self._locked(fcntl.LOCK_EX):
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise


class StateStore:
    """Single-snapshot store kept in ``<config_dir>/state.json``.

    ``read`` never writes: when nothing has been persisted yet it returns the
    default snapshot.  ``write`` always overwrites the whole record.
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self._config_dir: Path = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR
        self._file = JsonFile(self._config_dir / STATE_FILE)

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Serialise a read-then-write against every other process.

        Reads and writes made through this store inside the block reuse the
        exclusive lock, so no other writer can interleave between them.
        """
        with self._file.transaction():
            yield

    def read(self) -> Snapshot:
        data = self._file.load()
        if data is None or STATE_KEY not in data:
            return Snapshot()
        record = data[STATE_KEY]
        if not isinstance(record, dict):
            raise StoreError(f"malformed {STATE_KEY} record in {self._file.path}")
        try:
            return Snapshot.from_record(record)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"malformed {STATE_KEY} record in {self._file.path}: {exc}") from exc

    def write(self, snapshot: Snapshot) -> None:
        self._file.dump({STATE_KEY: snapshot.to_record()})
        logger.debug("Persisted snapshot %s", snapshot.to_record())
