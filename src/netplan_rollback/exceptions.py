#!/usr/bin/env python3
"""
Exceptions raised by the rollback coordinator.

Components raise these; the CLI maps them to messages and exit codes.
"""

from typing import Optional


class RollbackError(Exception):
    """Base class for all rollback coordinator errors."""


class ConfigError(RollbackError):
    """Configuration file could not be loaded."""


class PreconditionError(RollbackError):
    """Bad arguments or missing files; nothing was changed."""


class AlreadyScheduledError(PreconditionError):
    """Another rollback is already outstanding."""


class ValidationFailedError(RollbackError):
    """Candidate configuration failed syntax validation."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


class BackupFailedError(RollbackError):
    """Snapshot of the live configuration could not be created."""


class BackupMissingError(RollbackError):
    """Snapshot referenced by the record no longer exists."""


class RestoreFailedError(RollbackError):
    """Snapshot could not be copied back onto the live configuration."""


class TriggerError(RollbackError):
    """The persistent trigger could not be armed or disarmed."""


class StateCorruptedError(RollbackError):
    """State file exists but cannot be parsed."""


class InvalidTransitionError(RollbackError):
    """Requested status change is not a forward transition."""


class InconsistentStateError(RollbackError):
    """Trigger state and stored record disagree."""

    def __init__(self, message: str, armed: Optional[bool] = None,
                 status: Optional[str] = None):
        super().__init__(message)
        self.armed = armed
        self.status = status


class ConfirmationRequiredError(InconsistentStateError):
    """Cleanup needs explicit operator override."""
