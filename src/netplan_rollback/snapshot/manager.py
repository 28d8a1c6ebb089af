#!/usr/bin/env python3
"""
Snapshot Manager - Immutable timestamped copies of the configuration being replaced.
"""

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, Any

from ..exceptions import BackupFailedError, RestoreFailedError


class ConfigBackupManager:
    """Creates, restores and deletes configuration snapshots."""

    def __init__(self, config: Dict[str, Any], clock: Callable[[], float] = time.time):
        """Initialize snapshot manager with configuration."""
        self.config = config
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self.snapshot_location = Path(config.get('snapshot_location', '/root/netplan-rollback'))
        self.prefix = config.get('snapshot_prefix', 'backup')

    def snapshot_name(self) -> str:
        """Name the next snapshot after the current UTC time."""
        timestamp = time.strftime('%Y%m%d-%H%M%S', time.gmtime(self.clock()))
        return f"{self.prefix}-{timestamp}.yaml"

    def create_snapshot(self, source_path: str) -> str:
        """Copy ``source_path`` into a new snapshot and return its path.

        Snapshots are created with O_EXCL; an existing snapshot is never
        overwritten.
        """
        self.logger.info(f"Creating backup of {source_path}")

        try:
            self.snapshot_location.mkdir(parents=True, exist_ok=True)
            os.chmod(self.snapshot_location, 0o700)

            base_name = self.snapshot_name()
            target = self.snapshot_location / base_name
            counter = 1
            while True:
                try:
                    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                    break
                except FileExistsError:
                    stem = base_name[:-len('.yaml')]
                    target = self.snapshot_location / f"{stem}-{counter}.yaml"
                    counter += 1

            try:
                with os.fdopen(fd, 'wb') as dst, open(source_path, 'rb') as src:
                    shutil.copyfileobj(src, dst)
                    dst.flush()
                    os.fsync(dst.fileno())
            except OSError:
                target.unlink()
                raise

        except OSError as e:
            raise BackupFailedError(f"Failed to back up {source_path}: {e}")

        self.logger.info(f"Backup created: {target}")
        return str(target)

    def exists(self, snapshot_path: str) -> bool:
        """Check that a snapshot exists and is readable."""
        return os.path.isfile(snapshot_path) and os.access(snapshot_path, os.R_OK)

    def restore_snapshot(self, snapshot_path: str, target_path: str) -> None:
        """Atomically copy a snapshot back over ``target_path``."""
        self.logger.info(f"Restoring {snapshot_path} to {target_path}")

        target = Path(target_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            mode = target.stat().st_mode & 0o777 if target.exists() else 0o600

            fd, tmp_path = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
            try:
                with os.fdopen(fd, 'wb') as dst, open(snapshot_path, 'rb') as src:
                    shutil.copyfileobj(src, dst)
                    dst.flush()
                    os.fsync(dst.fileno())
                os.chmod(tmp_path, mode)
                os.replace(tmp_path, target)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except FileNotFoundError:
                    pass
                raise

        except OSError as e:
            raise RestoreFailedError(f"Failed to restore {snapshot_path} to {target_path}: {e}")

        self.logger.info(f"Backup restored to {target_path}")

    def delete_snapshot(self, snapshot_path: str) -> bool:
        """Delete a snapshot at the operator's request."""
        try:
            os.unlink(snapshot_path)
            self.logger.info(f"Backup file removed: {snapshot_path}")
            return True
        except FileNotFoundError:
            self.logger.warning(f"Backup file already gone: {snapshot_path}")
            return False
