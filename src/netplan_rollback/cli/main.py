#!/usr/bin/env python3
"""
netplan-rollback CLI - Swap, confirm, inspect and execute netplan rollbacks.
"""

import argparse
import json
import logging
import os
import sys
from typing import Dict, Any, List, Optional

from ..capture.manager import CaptureManager
from ..config.settings import DEFAULT_CONFIG_PATH, load_config
from ..confirm.handler import ConfirmHandler
from ..exceptions import (
    ConfigError,
    ConfirmationRequiredError,
    RollbackError,
    ValidationFailedError,
)
from ..netplan.commands import NetplanApplier, NetplanValidator
from ..oplog.setup import setup_logging
from ..revert.engine import RollbackExecutor
from ..snapshot.manager import ConfigBackupManager
from ..state.store import StateStore
from ..status.reporter import StatusReporter, format_duration
from ..swap.orchestrator import SwapOrchestrator
from ..trigger.systemd import SystemdTrigger


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_STATUS_ERROR = 2

LOG_TAGS = {
    'swap': 'netplan-swap',
    'confirm': 'netplan-confirm',
    'status': 'netplan-status',
    'rollback': 'netplan-rollback',
}


class NetplanRollbackCLI:
    """Command-line interface for netplan-rollback."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize CLI and wire components from configuration."""
        self.config = config
        self.logger = logging.getLogger(__name__)

        global_config = config['global']
        state_dir = global_config['state_dir']

        self.store = StateStore(state_dir)
        self.backup_manager = ConfigBackupManager({'snapshot_location': state_dir})
        self.trigger = SystemdTrigger(config['trigger'])
        self.validator = NetplanValidator(config['netplan'])
        self.applier = NetplanApplier(config['netplan'])
        self.capture_manager = CaptureManager(config['capture'], state_dir)

    def require_root(self) -> bool:
        if not self.config['global'].get('require_root', True):
            return True
        if os.geteuid() != 0:
            self.logger.error("This command must be run as root")
            return False
        return True

    def cmd_swap(self, args) -> int:
        """Apply a new configuration with automatic rollback."""
        if not args.dry_run and not self.require_root():
            return EXIT_FAILURE

        timeout = args.timeout
        if timeout is None:
            timeout = self.config['global'].get('default_timeout', 300)

        orchestrator = SwapOrchestrator(
            store=self.store,
            backup_manager=self.backup_manager,
            trigger=self.trigger,
            validator=self.validator,
            applier=self.applier,
            rollback_action=self.config['trigger']['exec_start'],
            capture_manager=self.capture_manager
        )

        try:
            record = orchestrator.swap(
                current_path=args.current,
                new_path=args.new,
                timeout_seconds=timeout,
                dry_run=args.dry_run,
                capture_interfaces=_split_interfaces(args.capture_interfaces)
            )
        except ValidationFailedError as e:
            self.logger.error(f"{e}. Aborting.")
            if e.diagnostics:
                print("Netplan validation errors:", file=sys.stderr)
                print(e.diagnostics, file=sys.stderr)
            return EXIT_FAILURE
        except RollbackError as e:
            self.logger.error(str(e))
            return EXIT_FAILURE

        if args.dry_run:
            print(_format_dry_run(record, self.trigger.unit_name))
        else:
            print(_format_swap_summary(record, str(self.store.state_file), self.trigger.unit_name))
        return EXIT_OK

    def cmd_confirm(self, args) -> int:
        """Confirm the new configuration and cancel the rollback."""
        if not self.require_root():
            return EXIT_FAILURE

        handler = ConfirmHandler(
            store=self.store,
            backup_manager=self.backup_manager,
            trigger=self.trigger,
            capture_manager=self.capture_manager
        )

        try:
            record = handler.confirm(delete_snapshot=args.discard_backup, force=args.force)
        except ConfirmationRequiredError as e:
            self.logger.error(str(e))
            print("Re-run with --force to finalize the record and remove any leftover timer.",
                  file=sys.stderr)
            return EXIT_FAILURE
        except RollbackError as e:
            self.logger.error(str(e))
            return EXIT_FAILURE

        if record is None:
            print("No pending rollback found. Nothing to confirm.")
            return EXIT_OK

        print("=" * 80)
        print("CONFIGURATION CONFIRMED")
        print("=" * 80)
        print("New netplan configuration is now permanent.")
        print("Automatic rollback has been cancelled.")
        if not args.discard_backup:
            print(f"\nBackup location: {record.backup_path}")
        print(f"State file: {self.store.state_file}")
        return EXIT_OK

    def cmd_status(self, args) -> int:
        """Show whether a rollback is pending."""
        if not self.require_root():
            return EXIT_STATUS_ERROR

        status = StatusReporter(self.store, self.trigger).status()

        if args.quiet:
            return status.exit_code

        if args.json:
            print(json.dumps(status.to_dict(), indent=2))
        else:
            print(status.format_report())

        return status.exit_code

    def cmd_rollback(self, args) -> int:
        """Execute the rollback (invoked by the systemd timer)."""
        if not self.require_root():
            return EXIT_FAILURE

        executor = RollbackExecutor(
            store=self.store,
            backup_manager=self.backup_manager,
            trigger=self.trigger,
            applier=self.applier
        )

        try:
            record = executor.execute()
        except RollbackError as e:
            self.logger.critical(f"netplan-rollback FAILED: {e}")
            return EXIT_FAILURE

        if record is not None:
            print("=" * 80)
            print("ROLLBACK COMPLETE")
            print("=" * 80)
            print("Your previous netplan configuration has been restored.")
            print(f"\nBackup preserved at: {record.backup_path}")
            print(f"State file preserved: {self.store.state_file}")
        return EXIT_OK


def _split_interfaces(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [iface.strip() for iface in value.split(',') if iface.strip()]


def _format_dry_run(record, unit_name: str) -> str:
    return "\n".join([
        "",
        "=" * 80,
        "DRY-RUN MODE - NO CHANGES WILL BE MADE",
        "=" * 80,
        f"[DRY-RUN] Would backup: {record.original_config_path}",
        f"[DRY-RUN] Would create: {record.backup_path}",
        f"[DRY-RUN] Would apply: {record.new_config_path}",
        f"[DRY-RUN] Would schedule rollback in {record.timeout_seconds} seconds",
        f"[DRY-RUN] Would create systemd timer: {unit_name}.timer",
        f"[DRY-RUN] Would create systemd service: {unit_name}.service",
        "",
        "Validation completed successfully. No changes made.",
        "=" * 80,
    ])


def _format_swap_summary(record, state_file: str, unit_name: str) -> str:
    return "\n".join([
        "",
        "=" * 80,
        "NETPLAN CONFIGURATION APPLIED WITH AUTO-ROLLBACK",
        "=" * 80,
        f"{'Rollback scheduled:':<24}{record.rollback_datetime}",
        f"{'Time until rollback:':<24}{record.timeout_seconds} seconds "
        f"({format_duration(record.timeout_seconds)})",
        "",
        f"{'Backup location:':<24}{record.backup_path}",
        f"{'State file:':<24}{state_file}",
        f"{'Systemd timer:':<24}{unit_name}.timer",
        "",
        "IMPORTANT: Test your network connectivity now!",
        "",
        "IF NETWORK WORKS - Confirm to cancel rollback:",
        "  sudo netplan-rollback confirm",
        "",
        "IF NETWORK FAILS - Force immediate rollback:",
        f"  sudo systemctl start {unit_name}.service",
        "=" * 80,
    ])


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("Timeout must be a positive integer")
    if number <= 0:
        raise argparse.ArgumentTypeError("Timeout must be a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='netplan-rollback',
        description="Safe netplan configuration switcher with automatic rollback"
    )
    parser.add_argument(
        '--config',
        default=DEFAULT_CONFIG_PATH,
        help='Configuration file path'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    swap_parser = subparsers.add_parser('swap', help='Apply a new configuration with auto-rollback')
    swap_parser.add_argument('current', help='Path to the live netplan YAML')
    swap_parser.add_argument('new', help='Path to the netplan YAML to apply')
    swap_parser.add_argument('timeout', nargs='?', type=_positive_int,
                             help='Seconds before automatic rollback')
    swap_parser.add_argument('--dry-run', '-n', action='store_true',
                             help="Validate but don't apply changes")
    swap_parser.add_argument('--capture-interfaces',
                             help='Comma-separated interfaces to packet-capture during the change')

    confirm_parser = subparsers.add_parser('confirm', help='Confirm configuration and cancel rollback')
    backup_group = confirm_parser.add_mutually_exclusive_group()
    backup_group.add_argument('--keep-backup', '-k', dest='discard_backup', action='store_false',
                              help='Keep the backup file (default)')
    backup_group.add_argument('--discard-backup', dest='discard_backup', action='store_true',
                              help='Delete the backup file after confirming')
    confirm_parser.add_argument('--force', action='store_true',
                                help='Clean up even if the rollback timer is no longer active')
    confirm_parser.set_defaults(discard_backup=False)

    status_parser = subparsers.add_parser('status', help='Show pending rollback status')
    output_group = status_parser.add_mutually_exclusive_group()
    output_group.add_argument('--quiet', '-q', action='store_true',
                              help='Only exit code (0=active, 1=not active, 2=error)')
    output_group.add_argument('--json', '-j', action='store_true', help='Output in JSON format')

    subparsers.add_parser('rollback', help='Execute the scheduled rollback now')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILURE

    error_exit = EXIT_STATUS_ERROR if args.command == 'status' else EXIT_FAILURE

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return error_exit

    setup_logging(config, LOG_TAGS[args.command], verbose=args.verbose,
                  read_only=(args.command == 'status'))

    cli = NetplanRollbackCLI(config)

    command_handlers = {
        'swap': cli.cmd_swap,
        'confirm': cli.cmd_confirm,
        'status': cli.cmd_status,
        'rollback': cli.cmd_rollback,
    }

    return command_handlers[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
