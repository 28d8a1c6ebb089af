#!/usr/bin/env python3
"""
Confirm Handler - Makes the new configuration permanent by cancelling the rollback.
"""

import logging
from typing import Optional

from ..exceptions import ConfirmationRequiredError
from ..state.record import RollbackRecord, STATUS_CONFIRMED


class ConfirmHandler:
    """Cancels the outstanding rollback and finalizes the record."""

    def __init__(self, store, backup_manager, trigger, capture_manager=None):
        """Initialize confirm handler."""
        self.store = store
        self.backup_manager = backup_manager
        self.trigger = trigger
        self.capture_manager = capture_manager
        self.logger = logging.getLogger(__name__)

    def confirm(self, delete_snapshot: bool = False, force: bool = False) -> Optional[RollbackRecord]:
        """Confirm the current configuration.

        Returns the confirmed record, or ``None`` when there was nothing to
        confirm. Raises ``ConfirmationRequiredError`` when the trigger is no
        longer armed and ``force`` was not given.
        """
        with self.store.locked():
            record = self.store.load()

            if record is None:
                self.logger.warning("No pending rollback found. Nothing to confirm.")
                return None

            if record.is_terminal:
                self.logger.info(f"Rollback already resolved as '{record.status}', nothing to confirm")
                return None

            if self.trigger.is_armed():
                self.logger.info("Rollback timer is active - proceeding with cancellation")
            elif not force:
                raise ConfirmationRequiredError(
                    f"Rollback timer is not active but the state file says '{record.status}'. "
                    "It may have already executed or been cancelled; re-run with --force "
                    "to clean up",
                    armed=False, status=record.status
                )
            else:
                self.logger.warning(f"Rollback timer is not active (state '{record.status}'); "
                                    "cleaning up on operator override")

            # Disarm before finalizing: dying in between leaves a disarmed
            # trigger with a 'scheduled' record, never the reverse.
            self.trigger.disarm()
            self.store.transition(record, STATUS_CONFIRMED)
            self.logger.info("netplan configuration confirmed by user, rollback cancelled")

        self._stop_capture()

        if delete_snapshot:
            self.backup_manager.delete_snapshot(record.backup_path)
        else:
            self.logger.info(f"Backup preserved at: {record.backup_path}")

        return record

    def _stop_capture(self) -> None:
        if self.capture_manager is None:
            return
        try:
            self.capture_manager.stop()
        except Exception as e:
            self.logger.warning(f"Failed to stop diagnostic capture: {e}")
