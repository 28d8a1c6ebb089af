from .base import Trigger
from .memory import InProcessTrigger, ManualClock
from .systemd import SystemdTrigger

__all__ = ["Trigger", "InProcessTrigger", "ManualClock", "SystemdTrigger"]
