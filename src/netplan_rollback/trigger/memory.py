#!/usr/bin/env python3
"""
In-process Trigger - Callback queue driven by a controllable clock.

Used to exercise the rollback state machine without root or systemd.
"""

import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

from .base import Trigger


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, epoch: float) -> float:
        with self._lock:
            if epoch < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = float(epoch)
            return self._now


class InProcessTrigger(Trigger):
    """Holds at most one scheduled callback and fires it from ``run_due``."""

    def __init__(self, clock: Callable[[], float]):
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._queue: List[Tuple[int, Any]] = []
        self._lock = threading.RLock()
        self.fired: List[int] = []

    @property
    def scheduled_at(self) -> Optional[int]:
        with self._lock:
            return self._queue[0][0] if self._queue else None

    def arm(self, at_epoch: int, action: Any) -> None:
        with self._lock:
            if self._queue and self._queue[0][0] == at_epoch:
                return
            self._queue = [(at_epoch, action)]
        self.logger.debug(f"In-process rollback trigger armed for {at_epoch}")

    def disarm(self) -> None:
        with self._lock:
            self._queue = []

    def is_armed(self) -> bool:
        with self._lock:
            return bool(self._queue)

    def run_due(self) -> int:
        """Fire every callback whose time has come; returns how many fired.

        The entry stays queued while its callback runs, matching a real
        timer that remains active until the rollback disarms it.
        """
        now = self.clock()
        with self._lock:
            due = [entry for entry in self._queue if entry[0] <= now]

        for at_epoch, action in due:
            self.fired.append(at_epoch)
            self.logger.debug(f"In-process rollback trigger fired for {at_epoch}")
            if callable(action):
                action()

        return len(due)
