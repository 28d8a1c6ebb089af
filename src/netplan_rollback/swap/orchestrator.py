#!/usr/bin/env python3
"""
Swap Orchestrator - Applies a new configuration behind an armed rollback.
"""

import logging
import os
import shutil
import time
from typing import Any, Callable, List, Optional

from ..exceptions import (
    AlreadyScheduledError,
    InconsistentStateError,
    PreconditionError,
    ValidationFailedError,
)
from ..state.record import RollbackRecord, STATUS_PENDING, STATUS_SCHEDULED


class SwapOrchestrator:
    """Validates, backs up, applies and arms the rollback.

    Owns the single-flight invariant: the whole swap runs under the
    record's exclusive lock and refuses to start while a rollback is armed.
    Partial effects of a failed swap are left in place for manual recovery.
    """

    def __init__(self, store, backup_manager, trigger, validator, applier,
                 rollback_action: Any, clock: Callable[[], float] = time.time,
                 capture_manager=None):
        """Initialize swap orchestrator."""
        self.store = store
        self.backup_manager = backup_manager
        self.trigger = trigger
        self.validator = validator
        self.applier = applier
        self.rollback_action = rollback_action
        self.clock = clock
        self.capture_manager = capture_manager
        self.logger = logging.getLogger(__name__)

    def swap(self, current_path: str, new_path: str, timeout_seconds: int,
             dry_run: bool = False, capture_interfaces: Optional[List[str]] = None) -> RollbackRecord:
        """Replace ``current_path`` with ``new_path`` and schedule the rollback.

        Returns the scheduled record, or the unsaved planned record for a
        dry run.
        """
        started = self.clock()
        self.logger.info(f"netplan-swap invoked with: current={current_path} new={new_path} "
                         f"timeout={timeout_seconds}")

        self._check_arguments(current_path, new_path, timeout_seconds)

        if dry_run:
            self._check_not_scheduled()
            self._validate(new_path)
            return self._plan(current_path, new_path, timeout_seconds, started)

        with self.store.locked():
            self._check_not_scheduled()
            self._validate(new_path)

            backup_path = self.backup_manager.create_snapshot(current_path)

            previous = self.store.load()
            if previous is not None:
                self.store.archive()

            record = RollbackRecord.create(
                original_config_path=current_path,
                backup_path=backup_path,
                new_config_path=new_path,
                timeout_seconds=timeout_seconds,
                now=started
            )
            self.store.save(record)
            self.logger.info(f"State file created: {self.store.state_file} (status: {STATUS_PENDING})")

            if self.capture_manager is not None:
                self._start_capture(capture_interfaces or [], timeout_seconds)

            self._apply(new_path, current_path)

            try:
                self.trigger.arm(record.rollback_epoch, self.rollback_action)
            except Exception:
                self.logger.critical("Failed to arm rollback trigger - new configuration is "
                                     "active WITHOUT automatic rollback; restore "
                                     f"{backup_path} manually if needed")
                raise

            self.store.transition(record, STATUS_SCHEDULED)

        self.logger.info(f"netplan-swap completed successfully, rollback scheduled for "
                         f"{record.rollback_datetime}")
        return record

    def _check_arguments(self, current_path: str, new_path: str, timeout_seconds: int) -> None:
        for label, path in (('Current', current_path), ('New', new_path)):
            if not path:
                raise PreconditionError("Missing required arguments")
            if not os.path.isfile(path):
                raise PreconditionError(f"{label} config file not found: {path}")
            if not os.access(path, os.R_OK):
                raise PreconditionError(f"{label} config file not readable: {path}")

        if (not isinstance(timeout_seconds, int) or isinstance(timeout_seconds, bool)
                or timeout_seconds <= 0):
            raise PreconditionError("Timeout must be a positive integer")

    def _check_not_scheduled(self) -> None:
        """Refuse while a rollback is outstanding, trusting the live trigger first."""
        if self.trigger.is_armed():
            raise AlreadyScheduledError(
                "Another rollback is already scheduled; confirm the current "
                "configuration or wait for the rollback to complete"
            )

        record = self.store.load()
        if record is not None and record.status in (STATUS_PENDING, STATUS_SCHEDULED):
            raise InconsistentStateError(
                f"State file says '{record.status}' but the rollback trigger is not armed; "
                "reconcile manually (e.g. 'confirm --force') before swapping again",
                armed=False, status=record.status
            )

    def _validate(self, new_path: str) -> None:
        result = self.validator.validate(new_path)
        if not result.success:
            raise ValidationFailedError("Netplan syntax validation failed", result.output)

    def _plan(self, current_path: str, new_path: str, timeout_seconds: int,
              started: float) -> RollbackRecord:
        planned = RollbackRecord.create(
            original_config_path=current_path,
            backup_path=str(self.backup_manager.snapshot_location / self.backup_manager.snapshot_name()),
            new_config_path=new_path,
            timeout_seconds=timeout_seconds,
            now=started
        )
        self.logger.info(f"[DRY-RUN] Would back up {current_path} to {planned.backup_path}, "
                         f"apply {new_path} and schedule rollback in {timeout_seconds} seconds")
        return planned

    def _start_capture(self, interfaces: List[str], timeout_seconds: int) -> None:
        try:
            if interfaces:
                self.capture_manager.start(interfaces, timeout_seconds)
            else:
                self.capture_manager.clear_pid_file()
        except Exception as e:
            self.logger.warning(f"Diagnostic capture could not be started: {e}")

    def _apply(self, new_path: str, current_path: str) -> None:
        """Install and activate the new configuration.

        Failures only warn: the rollback is armed either way.
        """
        try:
            shutil.copyfile(new_path, current_path)
            self.logger.info(f"New configuration copied to {current_path}")
        except OSError as e:
            self.logger.warning(f"Failed to copy {new_path} to {current_path}: {e} "
                                "(continuing with rollback schedule)")
            return

        result = self.applier.apply()
        if result.success:
            self.logger.info("Configuration applied")
        else:
            self.logger.warning("netplan apply reported errors (continuing with rollback schedule): "
                                f"{result.output}")
