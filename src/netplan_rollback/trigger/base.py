#!/usr/bin/env python3
"""
Trigger - Interface to a scheduler that runs the rollback action at an absolute time.
"""

from abc import ABC, abstractmethod
from typing import Any


class Trigger(ABC):
    """Schedules exactly one rollback action at a wall-clock instant.

    Production implementations keep the schedule outside the arming process
    so the action still fires if that process dies. ``is_armed`` queries the
    scheduler itself, not cached local state.
    """

    @abstractmethod
    def arm(self, at_epoch: int, action: Any) -> None:
        """Schedule ``action`` for ``at_epoch``. Re-arming the same schedule is a no-op."""

    @abstractmethod
    def disarm(self) -> None:
        """Remove the schedule so the action never runs. Safe when not armed."""

    @abstractmethod
    def is_armed(self) -> bool:
        """Return whether the scheduler currently holds a pending action."""
