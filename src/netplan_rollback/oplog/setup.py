#!/usr/bin/env python3
"""
Operation log - Logging to the operation log file, syslog and the terminal.
"""

import logging
import logging.handlers
import os
import sys
from typing import Dict, Any, List


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
SYSLOG_FORMAT = '%(name)s: %(levelname)s %(message)s'


def setup_logging(config: Dict[str, Any], tag: str, verbose: bool = False,
                  read_only: bool = False) -> logging.Logger:
    """Configure root logging for one command invocation.

    ``tag`` identifies the command in syslog (e.g. ``netplan-swap``). With
    ``read_only`` nothing is created on disk: the operation log is only used
    if its directory already exists, and the file is opened on first write.
    """
    global_config = config.get('global', {})
    level_name = 'DEBUG' if verbose else global_config.get('log_level', 'INFO')
    log_level = getattr(logging, str(level_name).upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    problems = []

    log_file = global_config.get('log_file')
    log_dir = os.path.dirname(log_file) if log_file else None
    if log_file and read_only:
        if not log_dir or os.path.isdir(log_dir):
            handlers.append(logging.FileHandler(log_file, delay=True))
    elif log_file:
        try:
            if log_dir:
                os.makedirs(log_dir, mode=0o700, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            problems.append(f"Operation log unavailable ({log_file}): {e}")

    if global_config.get('syslog_enabled', True):
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=global_config.get('syslog_address', '/dev/log')
            )
            syslog_handler.ident = f"{tag}: "
            syslog_handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
            handlers.append(syslog_handler)
        except OSError as e:
            problems.append(f"Syslog unavailable: {e}")

    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True
    )

    logger = logging.getLogger(tag)
    for problem in problems:
        logger.warning(problem)

    return logger
