#!/usr/bin/env python3
"""
Systemd Trigger - Persistent calendar timer that runs the rollback action.
"""

import logging
import subprocess
import time
from pathlib import Path
from typing import Dict, Any, List

from ..exceptions import TriggerError
from .base import Trigger


SERVICE_TEMPLATE = """[Unit]
Description=Netplan Automatic Rollback
After=network.target
DefaultDependencies=no

[Service]
Type=oneshot
ExecStart={exec_start}
StandardOutput=journal+console
StandardError=journal+console
RemainAfterExit=no
"""

TIMER_TEMPLATE = """[Unit]
Description=Netplan Automatic Rollback Timer
PartOf={unit_name}.service

[Timer]
OnCalendar={calendar}
Persistent=true
AccuracySec=1s

[Install]
WantedBy=timers.target
"""


class SystemdTrigger(Trigger):
    """Arms a one-shot systemd timer for the rollback service.

    ``Persistent=true`` makes systemd run a missed activation on the next
    boot, so the rollback survives a reboot between arming and firing.
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize systemd trigger."""
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.unit_name = config.get('unit_name', 'netplan-auto-rollback')
        self.unit_dir = Path(config.get('unit_dir', '/etc/systemd/system'))
        self.systemctl = config.get('systemctl_command', 'systemctl')
        self.command_timeout = config.get('command_timeout', 30)

    @property
    def service_path(self) -> Path:
        return self.unit_dir / f"{self.unit_name}.service"

    @property
    def timer_path(self) -> Path:
        return self.unit_dir / f"{self.unit_name}.timer"

    @property
    def timer_unit(self) -> str:
        return f"{self.unit_name}.timer"

    @staticmethod
    def format_calendar(at_epoch: int) -> str:
        """Render an epoch as an absolute OnCalendar expression in UTC."""
        return time.strftime('%Y-%m-%d %H:%M:%S', time.gmtime(at_epoch)) + ' UTC'

    def arm(self, at_epoch: int, action: Any) -> None:
        """Write the units and start the timer for ``at_epoch``."""
        service_content = SERVICE_TEMPLATE.format(exec_start=action)
        timer_content = TIMER_TEMPLATE.format(
            unit_name=self.unit_name,
            calendar=self.format_calendar(at_epoch)
        )

        if (self._read_unit(self.service_path) == service_content
                and self._read_unit(self.timer_path) == timer_content
                and self.is_armed()):
            self.logger.info(f"Rollback timer already armed for {self.format_calendar(at_epoch)}")
            return

        self.logger.info(f"Creating systemd units in {self.unit_dir}")
        try:
            self.unit_dir.mkdir(parents=True, exist_ok=True)
            self._write_unit(self.service_path, service_content)
            self._write_unit(self.timer_path, timer_content)
        except OSError as e:
            raise TriggerError(f"Failed to write systemd units: {e}")

        self._systemctl(['daemon-reload'])
        self._systemctl(['enable', self.timer_unit])
        self._systemctl(['restart', self.timer_unit])

        self.logger.info(f"Rollback timer scheduled: {self.format_calendar(at_epoch)}")

    def disarm(self) -> None:
        """Stop and remove the timer and service units."""
        self.logger.info("Stopping and disabling rollback timer")
        self._systemctl(['stop', self.timer_unit], check=False)
        self._systemctl(['disable', self.timer_unit], check=False)

        removed = False
        for unit_path in (self.timer_path, self.service_path):
            try:
                unit_path.unlink()
                removed = True
            except FileNotFoundError:
                pass
            except OSError as e:
                raise TriggerError(f"Failed to remove {unit_path}: {e}")

        if removed:
            self._systemctl(['daemon-reload'])

        if self.is_armed():
            raise TriggerError(f"{self.timer_unit} is still active after disarm")

        self.logger.info("Rollback timer removed")

    def is_armed(self) -> bool:
        """Ask systemd whether the timer is active."""
        try:
            result = subprocess.run(
                [self.systemctl, 'is-active', '--quiet', self.timer_unit],
                capture_output=True, text=True, check=False,
                timeout=self.command_timeout
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TriggerError(f"Cannot query {self.timer_unit}: {e}")

        return result.returncode == 0

    def _systemctl(self, args: List[str], check: bool = True) -> bool:
        cmd = [self.systemctl] + args
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False,
                                    timeout=self.command_timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TriggerError(f"Failed to run {' '.join(cmd)}: {e}")

        if result.returncode != 0:
            if check:
                raise TriggerError(f"{' '.join(cmd)} failed: {result.stderr.strip()}")
            self.logger.debug(f"{' '.join(cmd)} returned {result.returncode}: {result.stderr.strip()}")
            return False

        return True

    def _read_unit(self, path: Path) -> str:
        try:
            return path.read_text()
        except OSError:
            return ""

    def _write_unit(self, path: Path, content: str) -> None:
        path.write_text(content)
        path.chmod(0o644)
