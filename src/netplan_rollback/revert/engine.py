#!/usr/bin/env python3
"""
Revert Engine - Restores the snapshot when the rollback trigger fires.
"""

import logging
from typing import Optional

from ..exceptions import BackupMissingError
from ..state.record import RollbackRecord, STATUS_COMPLETED


class RollbackExecutor:
    """Runs the rollback action invoked by the trigger."""

    def __init__(self, store, backup_manager, trigger, applier):
        """Initialize rollback executor."""
        self.store = store
        self.backup_manager = backup_manager
        self.trigger = trigger
        self.applier = applier
        self.logger = logging.getLogger(__name__)

    def execute(self) -> Optional[RollbackRecord]:
        """Restore the snapshot and finalize the record.

        Returns the completed record, or ``None`` when there was nothing to
        roll back.
        """
        self.logger.info("Starting netplan rollback process")

        with self.store.locked():
            record = self.store.load()

            if record is None:
                self.logger.warning("No rollback state found. Nothing to rollback.")
                return None

            if record.is_terminal:
                # Lost the race against confirm (or a previous run finished).
                self.logger.info(f"Rollback already resolved as '{record.status}', nothing to do")
                self._disarm_leftover()
                return None

            if not self.backup_manager.exists(record.backup_path):
                self.logger.critical(f"Backup file not found: {record.backup_path} - "
                                     "rollback is impossible, system left in the applied state")
                raise BackupMissingError(f"Backup file not found: {record.backup_path}")

            self.logger.warning(f"Rolling back {record.original_config_path} to {record.backup_path} "
                                "(automatic rollback timeout reached)")

            self.backup_manager.restore_snapshot(record.backup_path, record.original_config_path)

            result = self.applier.apply()
            if result.success:
                self.logger.info("Rollback completed successfully")
            else:
                self.logger.critical("netplan apply failed during rollback! Manual intervention "
                                     f"may be required: {result.output}")

            self.store.transition(record, STATUS_COMPLETED)

            self.trigger.disarm()
            self.logger.info("Rollback timer removed")

        return record

    def _disarm_leftover(self) -> None:
        if self.trigger.is_armed():
            self.logger.warning("Rollback trigger still armed for a resolved record, disarming")
            self.trigger.disarm()
