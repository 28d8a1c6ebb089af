#!/usr/bin/env python3
"""
Status Reporter - Read-only view of the outstanding rollback.
"""

import logging
import time
from contextlib import nullcontext
from typing import Callable, Dict, Any, Optional

from ..exceptions import RollbackError, StateCorruptedError
from ..state.record import (
    RollbackRecord,
    STATUS_PENDING,
    STATUS_SCHEDULED,
    local_datetime,
    utc_timestamp,
)


STATE_INACTIVE = "inactive"
STATE_ACTIVE = "active"
STATE_INCONSISTENT = "inconsistent"


def format_duration(seconds: int) -> str:
    """Render seconds as e.g. ``1h 2m 5s``."""
    days, remainder = divmod(max(0, int(seconds)), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    if days:
        return f"{days}d {hours}h {minutes}m {secs}s"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class RollbackStatus:
    """Snapshot of rollback state at one instant."""

    def __init__(self, state: str, now: float, message: str = "",
                 record: Optional[RollbackRecord] = None, armed: Optional[bool] = None,
                 state_file: str = ""):
        self.state = state
        self.now = now
        self.message = message
        self.record = record
        self.armed = armed
        self.state_file = state_file

    @property
    def active(self) -> bool:
        return self.state == STATE_ACTIVE

    @property
    def phase(self) -> Optional[str]:
        return self.record.status if self.record else None

    @property
    def fire_epoch(self) -> Optional[int]:
        return self.record.rollback_epoch if self.record else None

    @property
    def seconds_remaining(self) -> Optional[int]:
        if self.record is None:
            return None
        return self.record.seconds_remaining(self.now)

    @property
    def exit_code(self) -> int:
        return {STATE_ACTIVE: 0, STATE_INACTIVE: 1}.get(self.state, 2)

    def to_dict(self) -> Dict[str, Any]:
        """JSON document for machine consumers."""
        data: Dict[str, Any] = {
            'active': self.active,
            'state': self.state,
        }

        if self.state == STATE_INCONSISTENT:
            data['error'] = self.message
            data['timer_active'] = self.armed
            data['state_file'] = self.state_file
        elif self.state == STATE_INACTIVE:
            data['message'] = self.message

        if self.record is not None and self.state == STATE_INACTIVE:
            data['last_status'] = self.record.status
        elif self.record is not None:
            data.update({
                'status': self.record.status,
                'current_time': utc_timestamp(self.now),
                'rollback_epoch': self.record.rollback_epoch,
                'rollback_datetime': self.record.rollback_datetime,
                'time_remaining_seconds': self.seconds_remaining,
                'timeout_seconds': self.record.timeout_seconds,
                'original_config_path': self.record.original_config_path,
                'new_config_path': self.record.new_config_path,
                'backup_path': self.record.backup_path,
                'state_file': self.state_file,
            })

        return data

    def format_report(self) -> str:
        """Human-readable report."""
        if self.state == STATE_INACTIVE:
            return (f"{self.message}\n\n"
                    "To apply a new configuration with rollback protection:\n"
                    "  sudo netplan-rollback swap <current-config> <new-config> [timeout]")

        if self.state == STATE_INCONSISTENT:
            return (f"Error: {self.message}\n"
                    "This is an inconsistent state and needs manual reconciliation.\n"
                    "  Keep the current configuration:  sudo netplan-rollback confirm --force\n"
                    "  Or inspect the timer:            systemctl status netplan-auto-rollback.timer")

        record = self.record
        remaining = self.seconds_remaining
        lines = [
            "=" * 80,
            "NETPLAN ROLLBACK STATUS",
            "=" * 80,
            f"{'Status:':<24}ACTIVE - Rollback scheduled",
            f"{'Current time:':<24}{local_datetime(self.now)}",
            f"{'Rollback scheduled:':<24}{record.rollback_datetime or local_datetime(record.rollback_epoch)}",
            f"{'Time remaining:':<24}{format_duration(remaining)} ({remaining} seconds)",
            "",
            f"{'Original timeout:':<24}{record.timeout_seconds} seconds",
            f"{'Current status:':<24}{record.status}",
            "",
            "Configuration:",
            f"  {'Original config:':<22}{record.original_config_path}",
            f"  {'New config:':<22}{record.new_config_path}",
            f"  {'Backup location:':<22}{record.backup_path}",
            "",
            f"{'State file:':<24}{self.state_file}",
            "=" * 80,
            "",
            "ACTIONS:",
            "  Confirm and cancel rollback:",
            "    sudo netplan-rollback confirm",
            "  Force immediate rollback:",
            "    sudo systemctl start netplan-auto-rollback.service",
        ]
        return "\n".join(lines)


class StatusReporter:
    """Combines the trigger's live state with the stored record."""

    def __init__(self, store, trigger, clock: Callable[[], float] = time.time):
        """Initialize status reporter."""
        self.store = store
        self.trigger = trigger
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def status(self) -> RollbackStatus:
        """Report current rollback state without mutating anything."""
        state_file = str(self.store.state_file)

        # Status never creates the lock file.
        lock = self.store.locked(shared=True) if self.store.lock_file.exists() else nullcontext()

        with lock:
            try:
                armed = self.trigger.is_armed()
            except RollbackError as e:
                return RollbackStatus(STATE_INCONSISTENT, self.clock(),
                                      message=f"Cannot query rollback trigger: {e}",
                                      state_file=state_file)

            try:
                record = self.store.load()
            except StateCorruptedError as e:
                return RollbackStatus(STATE_INCONSISTENT, self.clock(), message=str(e),
                                      armed=armed, state_file=state_file)

        now = self.clock()
        scheduled = record is not None and record.status == STATUS_SCHEDULED

        if armed and record is None:
            message = "Timer is active but state file is missing"
        elif armed and not scheduled:
            message = f"Timer is active but state file says '{record.status}'"
        elif scheduled and not armed:
            message = "State file says 'scheduled' but the rollback timer is not active"
        elif record is not None and record.status == STATUS_PENDING:
            message = "State file says 'pending' with no active timer (incomplete swap)"
        elif not armed:
            return RollbackStatus(STATE_INACTIVE, now, message="No rollback timer active",
                                  record=record, armed=armed, state_file=state_file)
        else:
            return RollbackStatus(STATE_ACTIVE, now, record=record, armed=armed,
                                  state_file=state_file)

        self.logger.debug(f"Inconsistent rollback state: {message}")
        return RollbackStatus(STATE_INCONSISTENT, now, message=message, record=record,
                              armed=armed, state_file=state_file)
