#!/usr/bin/env python3
"""
Rollback Record - The single persisted rollback decision.
"""

import getpass
import os
import socket
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from ..exceptions import InvalidTransitionError, StateCorruptedError


RECORD_VERSION = "1.0"

STATUS_PENDING = "pending"
STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"

TERMINAL_STATUSES = (STATUS_CONFIRMED, STATUS_COMPLETED)

# pending -> completed and pending -> confirmed only happen after a swap died
# between arming the trigger and recording it.
TRANSITIONS = {
    STATUS_PENDING: (STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_COMPLETED),
    STATUS_SCHEDULED: (STATUS_CONFIRMED, STATUS_COMPLETED),
    STATUS_CONFIRMED: (),
    STATUS_COMPLETED: (),
}

REQUIRED_FIELDS = (
    'original_config_path',
    'backup_path',
    'new_config_path',
    'timeout_seconds',
    'rollback_epoch',
    'status',
)


def utc_timestamp(epoch: float) -> str:
    """Format an epoch as a UTC ISO-8601 timestamp."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def local_datetime(epoch: float) -> str:
    """Format an epoch for humans in local time."""
    return time.strftime('%Y-%m-%d %H:%M:%S %Z (UTC%z)', time.localtime(epoch))


def _current_user() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return str(os.getuid())


class RollbackRecord:
    """Represents the outstanding (or most recent) rollback decision."""

    def __init__(self, original_config_path: str, backup_path: str, new_config_path: str,
                 timeout_seconds: int, rollback_epoch: int, status: str = STATUS_PENDING,
                 timestamp: Optional[str] = None, rollback_datetime: Optional[str] = None,
                 timezone_name: Optional[str] = None, confirmed_at: Optional[str] = None,
                 rollback_completed_at: Optional[str] = None, pid: Optional[int] = None,
                 user: Optional[str] = None, hostname: Optional[str] = None,
                 version: str = RECORD_VERSION):
        """Initialize rollback record."""
        if status not in TRANSITIONS:
            raise ValueError(f"Unknown rollback status: {status}")

        self.version = version
        self.original_config_path = original_config_path
        self.backup_path = backup_path
        self.new_config_path = new_config_path
        self.timeout_seconds = timeout_seconds
        self._rollback_epoch = rollback_epoch
        self.status = status
        self.timestamp = timestamp
        self.rollback_datetime = rollback_datetime
        self.timezone = timezone_name
        self.confirmed_at = confirmed_at
        self.rollback_completed_at = rollback_completed_at
        self.pid = pid
        self.user = user
        self.hostname = hostname

    @classmethod
    def create(cls, original_config_path: str, backup_path: str, new_config_path: str,
               timeout_seconds: int, now: float) -> 'RollbackRecord':
        """Create a new pending record with fire time computed from ``now``."""
        started = int(now)
        rollback_epoch = started + timeout_seconds

        return cls(
            original_config_path=original_config_path,
            backup_path=backup_path,
            new_config_path=new_config_path,
            timeout_seconds=timeout_seconds,
            rollback_epoch=rollback_epoch,
            status=STATUS_PENDING,
            timestamp=utc_timestamp(started),
            rollback_datetime=local_datetime(rollback_epoch),
            timezone_name=time.strftime('%Z', time.localtime(rollback_epoch)),
            pid=os.getpid(),
            user=_current_user(),
            hostname=socket.gethostname(),
        )

    @property
    def rollback_epoch(self) -> int:
        """Absolute fire time; fixed at creation."""
        return self._rollback_epoch

    @property
    def is_scheduled(self) -> bool:
        return self.status == STATUS_SCHEDULED

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def seconds_remaining(self, now: float) -> int:
        """Seconds until the rollback fires, never negative."""
        return max(0, self._rollback_epoch - int(now))

    def advance(self, new_status: str, now: float) -> None:
        """Move the record forward, stamping terminal timestamps once."""
        if new_status not in TRANSITIONS.get(self.status, ()):
            raise InvalidTransitionError(
                f"Invalid rollback transition: {self.status} -> {new_status}"
            )

        if new_status == STATUS_CONFIRMED:
            self.confirmed_at = utc_timestamp(now)
        elif new_status == STATUS_COMPLETED:
            self.rollback_completed_at = utc_timestamp(now)

        self.status = new_status

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk JSON layout."""
        return {
            'version': self.version,
            'timestamp': self.timestamp,
            'original_config_path': self.original_config_path,
            'backup_path': self.backup_path,
            'new_config_path': self.new_config_path,
            'timeout_seconds': self.timeout_seconds,
            'rollback_epoch': self._rollback_epoch,
            'rollback_datetime': self.rollback_datetime,
            'timezone': self.timezone,
            'pid': self.pid,
            'user': self.user,
            'hostname': self.hostname,
            'status': self.status,
            'confirmed_at': self.confirmed_at,
            'rollback_completed_at': self.rollback_completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RollbackRecord':
        """Build a record from its JSON layout, rejecting malformed data."""
        if not isinstance(data, dict):
            raise StateCorruptedError("State file does not contain a JSON object")

        missing = [key for key in REQUIRED_FIELDS if data.get(key) in (None, "")]
        if missing:
            raise StateCorruptedError(f"State file missing fields: {', '.join(missing)}")

        for key in ('timeout_seconds', 'rollback_epoch'):
            if not isinstance(data[key], int) or isinstance(data[key], bool):
                raise StateCorruptedError(f"State file field {key} is not an integer")

        try:
            return cls(
                original_config_path=data['original_config_path'],
                backup_path=data['backup_path'],
                new_config_path=data['new_config_path'],
                timeout_seconds=data['timeout_seconds'],
                rollback_epoch=data['rollback_epoch'],
                status=data['status'],
                timestamp=data.get('timestamp'),
                rollback_datetime=data.get('rollback_datetime'),
                timezone_name=data.get('timezone'),
                confirmed_at=data.get('confirmed_at'),
                rollback_completed_at=data.get('rollback_completed_at'),
                pid=data.get('pid'),
                user=data.get('user'),
                hostname=data.get('hostname'),
                version=data.get('version', RECORD_VERSION),
            )
        except ValueError as e:
            raise StateCorruptedError(str(e))

    def __eq__(self, other) -> bool:
        if not isinstance(other, RollbackRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (f"RollbackRecord(status={self.status!r}, rollback_epoch={self._rollback_epoch}, "
                f"backup_path={self.backup_path!r})")
