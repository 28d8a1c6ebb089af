#!/usr/bin/env python3
"""
Capture Manager - Best-effort packet and log capture around a configuration change.

Capture runs in detached side processes, each bounded by the confirmation
window plus a grace period. Nothing here affects whether a rollback is
scheduled; every failure is logged and swallowed by the callers.
"""

import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Callable, Dict, Any, List, Optional, Tuple

import psutil


class CaptureManager:
    """Starts and stops dumpcap/journalctl capture processes."""

    PID_FILE_NAME = "capture.pid"

    def __init__(self, config: Dict[str, Any], state_dir: str,
                 clock: Callable[[], float] = time.time):
        """Initialize capture manager."""
        self.config = config
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self.state_dir = Path(state_dir)
        self.capture_dir = self.state_dir / 'captures'
        self.pid_file = self.state_dir / self.PID_FILE_NAME
        self.dumpcap_command = config.get('dumpcap_command', 'dumpcap')
        self.journalctl_command = config.get('journalctl_command', 'journalctl')
        self.timeout_command = config.get('timeout_command', 'timeout')
        self.grace_seconds = config.get('grace_seconds', 30)
        self.stop_timeout = config.get('stop_timeout', 5)

    def start(self, interfaces: List[str], duration: int) -> Optional[Path]:
        """Start capture on ``interfaces`` for ``duration`` seconds plus grace."""
        if not interfaces:
            return None

        timestamp = time.strftime('%Y%m%d-%H%M%S', time.gmtime(self.clock()))
        session_dir = self.capture_dir / timestamp
        (session_dir / 'pcaps').mkdir(parents=True, exist_ok=True)
        (session_dir / 'logs').mkdir(parents=True, exist_ok=True)
        os.chmod(session_dir, 0o700)

        total = duration + self.grace_seconds
        entries = []

        for iface in interfaces:
            cmd = [
                self.dumpcap_command, '-i', iface,
                '-w', str(session_dir / 'pcaps' / f'{iface}.pcapng'),
                '-a', f'duration:{total}'
            ]
            entry = self._spawn(cmd, session_dir / 'logs' / f'{iface}-dumpcap.log')
            if entry:
                entries.append(entry)
                self.logger.info(f"Started dumpcap on {iface} (PID: {entry[0]})")

        # journalctl -f never exits on its own
        journal_cmd = [
            self.timeout_command, '--signal=TERM', '--kill-after=5s', f'{total}s',
            self.journalctl_command, '-f', '-o', 'short-iso'
        ]
        entry = self._spawn(journal_cmd, session_dir / 'logs' / 'journal.log')
        if entry:
            entries.append(entry)

        if entries:
            self.pid_file.write_text(''.join(
                f'{pid} {create_time!r} {name}\n' for pid, create_time, name in entries
            ))
            os.chmod(self.pid_file, 0o600)
        else:
            self.clear_pid_file()

        self.logger.info(f"Capture session started: {session_dir}")
        return session_dir

    def _spawn(self, cmd: List[str], log_path: Path) -> Optional[Tuple[int, float, str]]:
        """Start ``cmd`` detached; returns (pid, create_time, name) identifying it."""
        try:
            with open(log_path, 'w') as log_file:
                proc = subprocess.Popen(
                    cmd, stdout=log_file, stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL, start_new_session=True
                )
        except OSError as e:
            self.logger.warning(f"Failed to start {cmd[0]}: {e}")
            return None

        try:
            create_time = psutil.Process(proc.pid).create_time()
        except psutil.Error as e:
            self.logger.warning(f"{cmd[0]} exited immediately (PID: {proc.pid}): {e}")
            return None

        return proc.pid, create_time, os.path.basename(cmd[0])

    def _tracked_processes(self) -> List[psutil.Process]:
        """Processes from the pid file that are still the ones we started.

        A pid only counts while its create time and name match what was
        recorded; a reused pid belongs to someone else and is left alone.
        """
        try:
            content = self.pid_file.read_text()
        except FileNotFoundError:
            return []

        processes = []
        for line in content.splitlines():
            fields = line.split()
            if len(fields) != 3:
                continue
            try:
                pid = int(fields[0])
                create_time = float(fields[1])
            except ValueError:
                continue
            name = fields[2]

            try:
                process = psutil.Process(pid)
                if abs(process.create_time() - create_time) > 0.01 or process.name() != name:
                    self.logger.debug(f"PID {pid} no longer belongs to capture, ignoring")
                    continue
            except psutil.Error:
                continue
            processes.append(process)

        return processes

    def running_pids(self) -> List[int]:
        """PIDs of capture processes that are still alive."""
        return [process.pid for process in self._tracked_processes()]

    def clear_pid_file(self) -> None:
        """Forget any previous capture session."""
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            pass

    def stop(self) -> int:
        """Terminate running capture processes; returns how many were stopped."""
        processes = []
        for process in self._tracked_processes():
            try:
                process.terminate()
                processes.append(process)
                self.logger.info(f"Stopping capture process (PID: {process.pid})")
            except psutil.NoSuchProcess:
                continue

        if processes:
            _, alive = psutil.wait_procs(processes, timeout=self.stop_timeout)
            for process in alive:
                self.logger.warning(f"Capture process {process.pid} did not exit, killing")
                try:
                    process.kill()
                except psutil.NoSuchProcess:
                    pass

        self.clear_pid_file()

        return len(processes)
