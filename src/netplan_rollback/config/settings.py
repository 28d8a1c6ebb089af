#!/usr/bin/env python3
"""
Settings - YAML configuration with built-in defaults.
"""

import copy
import os
import shutil
from typing import Dict, Any, Optional

import yaml

from ..exceptions import ConfigError


DEFAULT_CONFIG_PATH = "/etc/netplan-rollback/config.yaml"
DEFAULT_STATE_DIR = "/root/netplan-rollback"


def get_default_config() -> Dict[str, Any]:
    """Return default configuration."""
    return {
        'global': {
            'state_dir': DEFAULT_STATE_DIR,
            'default_timeout': 300,
            'log_level': 'INFO',
            'log_file': None,
            'syslog_enabled': True,
            'syslog_address': '/dev/log',
            'require_root': True,
        },
        'trigger': {
            'unit_name': 'netplan-auto-rollback',
            'unit_dir': '/etc/systemd/system',
            'systemctl_command': 'systemctl',
            'command_timeout': 30,
            'exec_start': None,
        },
        'netplan': {
            'command': 'netplan',
            'validate_timeout': 60,
            'apply_timeout': 120,
        },
        'capture': {
            'dumpcap_command': 'dumpcap',
            'journalctl_command': 'journalctl',
            'timeout_command': 'timeout',
            'grace_seconds': 30,
            'stop_timeout': 5,
        },
    }


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from YAML, falling back to defaults when absent."""
    config = get_default_config()

    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f)
    except FileNotFoundError:
        loaded = None
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing configuration file: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {config_path}: {e}")

    if loaded is not None:
        if not isinstance(loaded, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")
        _merge(config, copy.deepcopy(loaded))

    return _resolve(config, config_path)


def _resolve(config: Dict[str, Any], config_path: str) -> Dict[str, Any]:
    """Fill values that depend on other settings."""
    global_config = config['global']
    state_dir = global_config['state_dir']

    if not global_config.get('log_file'):
        global_config['log_file'] = os.path.join(state_dir, 'rollback.log')

    trigger_config = config['trigger']
    if not trigger_config.get('exec_start'):
        trigger_config['exec_start'] = default_exec_start(config_path)

    return config


def default_exec_start(config_path: Optional[str] = None) -> str:
    """Command line the rollback service runs when the timer fires."""
    executable = shutil.which('netplan-rollback') or '/usr/local/bin/netplan-rollback'
    if config_path:
        return f"{executable} --config {config_path} rollback"
    return f"{executable} rollback"
