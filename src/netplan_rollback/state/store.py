#!/usr/bin/env python3
"""
State Store - Durable single-record persistence for the rollback decision.

The record lives in one JSON file. Writes go to a temporary file in the same
directory and are renamed over the live file, so readers never observe a
partial record. Every read-modify-write runs under an exclusive ``flock`` on
a sibling lock file; readers that only report take a shared lock.
"""

import fcntl
import json
import logging
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from ..exceptions import StateCorruptedError
from .record import RollbackRecord


class StateStore:
    """Reads and atomically replaces the rollback record."""

    STATE_FILE_NAME = "state.json"
    LOCK_FILE_NAME = "state.lock"
    HISTORY_DIR_NAME = "history"

    def __init__(self, state_dir: str, clock: Callable[[], float] = time.time):
        """Initialize state store rooted at ``state_dir``."""
        self.state_dir = Path(state_dir)
        self.state_file = self.state_dir / self.STATE_FILE_NAME
        self.lock_file = self.state_dir / self.LOCK_FILE_NAME
        self.history_dir = self.state_dir / self.HISTORY_DIR_NAME
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._lock_fd: Optional[int] = None
        self._lock_mode: Optional[int] = None

    def ensure_directory(self) -> None:
        """Create the state directory with restricted permissions."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.state_dir, 0o700)

    @contextmanager
    def locked(self, shared: bool = False) -> Iterator['StateStore']:
        """Hold the record lock for the duration of the block.

        Re-entrant for the holder: nested ``locked()`` calls inside an
        exclusive block do not try to lock again.
        """
        if self._lock_fd is not None:
            yield self
            return

        if not shared:
            self.ensure_directory()
        mode = fcntl.LOCK_SH if shared else fcntl.LOCK_EX
        fd = os.open(self.lock_file, os.O_CREAT | os.O_RDWR, 0o600)
        try:
            fcntl.flock(fd, mode)
            self._lock_fd = fd
            self._lock_mode = mode
            yield self
        finally:
            self._lock_fd = None
            self._lock_mode = None
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def exists(self) -> bool:
        return self.state_file.exists()

    def load(self) -> Optional[RollbackRecord]:
        """Load the record; ``None`` when no state file exists.

        Any parse failure raises ``StateCorruptedError``; it never means
        "no rollback".
        """
        try:
            with open(self.state_file, 'r') as f:
                content = f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StateCorruptedError(f"Cannot read state file {self.state_file}: {e}")

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StateCorruptedError(f"Cannot parse state file {self.state_file}: {e}")

        return RollbackRecord.from_dict(data)

    def save(self, record: RollbackRecord) -> None:
        """Atomically replace the live record."""
        self._require_exclusive()
        self.ensure_directory()

        fd, tmp_path = tempfile.mkstemp(prefix='.state-', suffix='.tmp', dir=str(self.state_dir))
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(record.to_dict(), f, indent=2)
                f.write('\n')
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.state_file)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

        self._fsync_directory()

    def transition(self, record: RollbackRecord, new_status: str) -> RollbackRecord:
        """Advance ``record`` to ``new_status`` and persist it."""
        old_status = record.status
        record.advance(new_status, self.clock())
        self.save(record)
        self.logger.info(f"Rollback state transition: {old_status} -> {new_status} "
                         f"(rollback_epoch: {record.rollback_epoch})")
        return record

    def archive(self) -> Optional[Path]:
        """Move the current record into the history directory."""
        self._require_exclusive()

        if not self.state_file.exists():
            return None

        self.history_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.history_dir, 0o700)

        stamp = time.strftime('%Y%m%d-%H%M%S', time.gmtime(self.state_file.stat().st_mtime))
        target = self.history_dir / f"record-{stamp}.json"
        counter = 1
        while target.exists():
            target = self.history_dir / f"record-{stamp}-{counter}.json"
            counter += 1

        os.replace(self.state_file, target)
        self.logger.info(f"Archived previous rollback record: {target}")
        return target

    def _require_exclusive(self) -> None:
        if self._lock_fd is None or self._lock_mode != fcntl.LOCK_EX:
            raise RuntimeError("State store writes require the exclusive record lock")

    def _fsync_directory(self) -> None:
        try:
            dir_fd = os.open(self.state_dir, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError as e:
            self.logger.debug(f"Directory fsync failed for {self.state_dir}: {e}")
        finally:
            os.close(dir_fd)
