"""
netplan-rollback - Safe netplan configuration switcher with automatic rollback.

Applies a new netplan configuration behind a reboot-persistent rollback timer
and restores the previous configuration unless the operator confirms the
change in time. Designed for remote administrators who could otherwise lock
themselves out with a bad network change.
"""

__version__ = "1.0.0"
__author__ = "netplan-rollback contributors"

from .state.store import StateStore
from .state.record import RollbackRecord
from .snapshot.manager import ConfigBackupManager
from .swap.orchestrator import SwapOrchestrator
from .revert.engine import RollbackExecutor
from .confirm.handler import ConfirmHandler
from .status.reporter import StatusReporter, RollbackStatus
from .trigger.base import Trigger
from .trigger.systemd import SystemdTrigger
from .trigger.memory import InProcessTrigger, ManualClock

__all__ = [
    "StateStore",
    "RollbackRecord",
    "ConfigBackupManager",
    "SwapOrchestrator",
    "RollbackExecutor",
    "ConfirmHandler",
    "StatusReporter",
    "RollbackStatus",
    "Trigger",
    "SystemdTrigger",
    "InProcessTrigger",
    "ManualClock",
]
