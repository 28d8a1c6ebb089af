#!/usr/bin/env python3
"""
Netplan Commands - Syntax validation and activation of netplan configuration.
"""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Any

import yaml


class CommandResult:
    """Outcome of an external netplan command."""

    def __init__(self, success: bool, output: str = ""):
        self.success = success
        self.output = output

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        return f"CommandResult(success={self.success})"


class NetplanValidator:
    """Validates a candidate netplan document without touching the live system."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize validator."""
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.netplan_command = config.get('command', 'netplan')
        self.timeout = config.get('validate_timeout', 60)

    def validate(self, config_path: str) -> CommandResult:
        """Validate ``config_path``; no side effects on the host."""
        self.logger.info(f"Validating netplan configuration: {config_path}")

        result = self._check_yaml(config_path)
        if not result.success:
            return result

        with tempfile.TemporaryDirectory(prefix='netplan-validate-') as temp_dir:
            netplan_dir = Path(temp_dir) / 'etc' / 'netplan'
            netplan_dir.mkdir(parents=True)
            shutil.copy(config_path, netplan_dir / Path(config_path).name)

            try:
                proc = subprocess.run(
                    [self.netplan_command, 'generate', f'--root-dir={temp_dir}'],
                    capture_output=True, text=True, check=False, timeout=self.timeout
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                return CommandResult(False, f"Failed to run netplan generate: {e}")

        output = (proc.stdout + proc.stderr).strip()
        if proc.returncode != 0:
            self.logger.error("Syntax validation failed")
            return CommandResult(False, output)

        self.logger.info("Syntax validation passed")
        return CommandResult(True, output)

    def _check_yaml(self, config_path: str) -> CommandResult:
        """Reject documents that are not YAML mappings with a ``network`` key."""
        try:
            with open(config_path, 'r') as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            return CommandResult(False, f"YAML parse error: {e}")
        except OSError as e:
            return CommandResult(False, f"Cannot read {config_path}: {e}")

        if not isinstance(document, dict) or 'network' not in document:
            return CommandResult(False, "Netplan configuration must contain a top-level 'network' key")

        return CommandResult(True)


class NetplanApplier:
    """Activates the configuration currently on disk."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize applier."""
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.netplan_command = config.get('command', 'netplan')
        self.timeout = config.get('apply_timeout', 120)

    def apply(self) -> CommandResult:
        """Run ``netplan apply``."""
        self.logger.info("Applying netplan configuration")

        try:
            proc = subprocess.run(
                [self.netplan_command, 'apply'],
                capture_output=True, text=True, check=False, timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            return CommandResult(False, f"netplan apply timed out after {self.timeout}s")
        except OSError as e:
            return CommandResult(False, f"Failed to run netplan apply: {e}")

        output = (proc.stdout + proc.stderr).strip()
        if output:
            self.logger.debug(f"netplan apply output: {output}")

        return CommandResult(proc.returncode == 0, output)
