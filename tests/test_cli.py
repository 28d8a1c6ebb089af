#!/usr/bin/env python3
"""
Tests for the netplan-rollback command-line interface.
"""

import unittest
from unittest.mock import MagicMock, patch
import tempfile
import shutil
import os
import json
import logging
from io import StringIO

from netplan_rollback.cli.main import build_parser, main


class FakeSystem:
    """Stands in for systemctl and netplan behind subprocess.run."""

    def __init__(self):
        self.timer_active = False
        self.netplan_returncode = 0
        self.netplan_stderr = ''
        self.calls = []

    def run(self, cmd, **kwargs):
        self.calls.append(cmd)

        if cmd[0] == 'systemctl':
            action = cmd[1]
            if action == 'is-active':
                return MagicMock(returncode=0 if self.timer_active else 3, stdout='', stderr='')
            if action == 'restart':
                self.timer_active = True
            elif action == 'stop':
                self.timer_active = False
            return MagicMock(returncode=0, stdout='', stderr='')

        return MagicMock(returncode=self.netplan_returncode, stdout='', stderr=self.netplan_stderr)


class TestCLI(unittest.TestCase):
    """Test cases for the CLI entry point."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.state_dir = os.path.join(self.temp_dir, 'state')
        self.unit_dir = os.path.join(self.temp_dir, 'units')
        self.config_path = os.path.join(self.temp_dir, 'config.yaml')
        self.current_path = os.path.join(self.temp_dir, '01-netcfg.yaml')
        self.new_path = os.path.join(self.temp_dir, 'new.yaml')

        with open(self.config_path, 'w') as f:
            f.write(
                "global:\n"
                f"  state_dir: {self.state_dir}\n"
                "  syslog_enabled: false\n"
                "trigger:\n"
                f"  unit_dir: {self.unit_dir}\n"
                "  exec_start: /usr/local/bin/netplan-rollback rollback\n"
            )
        with open(self.current_path, 'w') as f:
            f.write("network:\n  version: 2\n")
        with open(self.new_path, 'w') as f:
            f.write("network:\n  version: 2\n  vlans: {}\n")

        self.system = FakeSystem()
        run_patcher = patch('subprocess.run', side_effect=self.system.run)
        euid_patcher = patch('os.geteuid', return_value=0)
        self.mock_run = run_patcher.start()
        self.mock_geteuid = euid_patcher.start()
        self.addCleanup(run_patcher.stop)
        self.addCleanup(euid_patcher.stop)

    def tearDown(self):
        """Clean up test fixtures."""
        for handler in logging.getLogger().handlers[:]:
            handler.close()
            logging.getLogger().removeHandler(handler)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _main(self, *args):
        with patch('sys.stdout', new_callable=StringIO) as stdout, \
                patch('sys.stderr', new_callable=StringIO):
            code = main(['--config', self.config_path] + list(args))
        return code, stdout.getvalue()

    def _read_state(self):
        with open(os.path.join(self.state_dir, 'state.json')) as f:
            return json.load(f)

    def test_no_command(self):
        """Test missing subcommand prints help and fails."""
        code, output = self._main()
        self.assertEqual(code, 1)
        self.assertIn('usage', output)

    def test_bad_config(self):
        """Test unreadable configuration fails with the command's error code."""
        with open(self.config_path, 'w') as f:
            f.write("global: [unclosed\n")

        self.assertEqual(self._main('status')[0], 2)
        self.assertEqual(self._main('confirm')[0], 1)

    def test_status_without_rollback(self):
        """Test status exit code when nothing is scheduled."""
        code, output = self._main('status')

        self.assertEqual(code, 1)
        self.assertIn("No rollback timer active", output)
        self.assertFalse(os.path.exists(self.state_dir))

    def test_swap_confirm_cycle(self):
        """Test swap, status and confirm end to end."""
        code, output = self._main('swap', self.current_path, self.new_path, '300')

        self.assertEqual(code, 0)
        self.assertIn("NETPLAN CONFIGURATION APPLIED WITH AUTO-ROLLBACK", output)
        self.assertTrue(self.system.timer_active)
        self.assertEqual(self._read_state()['status'], 'scheduled')
        self.assertIn(['netplan', 'apply'], self.system.calls)

        with open(os.path.join(self.unit_dir, 'netplan-auto-rollback.service')) as f:
            self.assertIn('ExecStart=/usr/local/bin/netplan-rollback rollback', f.read())

        code, output = self._main('status', '--json')
        self.assertEqual(code, 0)
        data = json.loads(output)
        self.assertTrue(data['active'])
        self.assertEqual(data['timeout_seconds'], 300)

        self.assertEqual(self._main('status', '--quiet'), (0, ''))

        code, output = self._main('confirm')
        self.assertEqual(code, 0)
        self.assertIn("CONFIGURATION CONFIRMED", output)
        self.assertFalse(self.system.timer_active)
        self.assertEqual(self._read_state()['status'], 'confirmed')
        self.assertFalse(os.path.exists(os.path.join(self.unit_dir, 'netplan-auto-rollback.timer')))

        self.assertEqual(self._main('status', '--quiet')[0], 1)

    def test_swap_default_timeout(self):
        """Test the configured default timeout is used when omitted."""
        code, _ = self._main('swap', self.current_path, self.new_path)

        self.assertEqual(code, 0)
        self.assertEqual(self._read_state()['timeout_seconds'], 300)

    def test_swap_refused_while_scheduled(self):
        """Test a second swap fails while a rollback is armed."""
        self._main('swap', self.current_path, self.new_path, '300')
        epoch = self._read_state()['rollback_epoch']

        code, _ = self._main('swap', self.current_path, self.new_path, '600')

        self.assertEqual(code, 1)
        self.assertEqual(self._read_state()['rollback_epoch'], epoch)

    def test_swap_then_rollback(self):
        """Test the rollback command restores the previous configuration."""
        self._main('swap', self.current_path, self.new_path, '300')

        code, output = self._main('rollback')

        self.assertEqual(code, 0)
        self.assertIn("ROLLBACK COMPLETE", output)
        self.assertEqual(self._read_state()['status'], 'completed')
        with open(self.current_path) as f:
            self.assertEqual(f.read(), "network:\n  version: 2\n")
        self.assertFalse(self.system.timer_active)

    def test_rollback_without_record(self):
        """Test the rollback command with nothing scheduled."""
        self.assertEqual(self._main('rollback')[0], 0)

    def test_swap_validation_failure(self):
        """Test an invalid configuration is rejected without changes."""
        self.system.netplan_returncode = 1
        self.system.netplan_stderr = "Error in network definition"

        code, _ = self._main('swap', self.current_path, self.new_path, '300')

        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(os.path.join(self.state_dir, 'state.json')))
        self.assertFalse(self.system.timer_active)

    def test_swap_dry_run_without_root(self):
        """Test dry run needs no privileges and changes nothing."""
        self.mock_geteuid.return_value = 1000

        code, output = self._main('swap', '--dry-run', self.current_path, self.new_path, '60')

        self.assertEqual(code, 0)
        self.assertIn("DRY-RUN MODE", output)
        self.assertFalse(os.path.exists(os.path.join(self.state_dir, 'state.json')))
        self.assertNotIn(['netplan', 'apply'], self.system.calls)

    def test_swap_requires_root(self):
        """Test a real swap refuses to run unprivileged."""
        self.mock_geteuid.return_value = 1000

        code, _ = self._main('swap', self.current_path, self.new_path, '60')

        self.assertEqual(code, 1)
        self.assertFalse(self.system.calls)

    def test_confirm_requires_force(self):
        """Test confirm refuses an orphaned record unless forced."""
        self._main('swap', self.current_path, self.new_path, '300')
        self.system.timer_active = False

        self.assertEqual(self._main('confirm')[0], 1)
        self.assertEqual(self._read_state()['status'], 'scheduled')

        self.assertEqual(self._main('confirm', '--force')[0], 0)
        self.assertEqual(self._read_state()['status'], 'confirmed')

    def test_confirm_discard_backup(self):
        """Test confirm can delete the snapshot."""
        self._main('swap', self.current_path, self.new_path, '300')
        backup_path = self._read_state()['backup_path']

        self.assertEqual(self._main('confirm', '--discard-backup')[0], 0)
        self.assertFalse(os.path.exists(backup_path))

    def test_status_inconsistent(self):
        """Test status reports disagreement with exit code 2."""
        self._main('swap', self.current_path, self.new_path, '300')
        self.system.timer_active = False

        code, output = self._main('status')

        self.assertEqual(code, 2)
        self.assertIn("inconsistent", output)


class TestParser(unittest.TestCase):
    """Test cases for argument parsing."""

    def test_timeout_must_be_positive(self):
        """Test non-positive timeouts are rejected by the parser."""
        parser = build_parser()
        with patch('sys.stderr', new_callable=StringIO):
            with self.assertRaises(SystemExit):
                parser.parse_args(['swap', 'a.yaml', 'b.yaml', '0'])
            with self.assertRaises(SystemExit):
                parser.parse_args(['swap', 'a.yaml', 'b.yaml', 'soon'])

    def test_confirm_flags(self):
        """Test backup flags are mutually exclusive and default to keeping."""
        parser = build_parser()

        self.assertFalse(parser.parse_args(['confirm']).discard_backup)
        self.assertTrue(parser.parse_args(['confirm', '--discard-backup']).discard_backup)
        self.assertFalse(parser.parse_args(['confirm', '-k']).discard_backup)

        with patch('sys.stderr', new_callable=StringIO):
            with self.assertRaises(SystemExit):
                parser.parse_args(['confirm', '--keep-backup', '--discard-backup'])

    def test_status_flags(self):
        """Test quiet and json are mutually exclusive."""
        parser = build_parser()
        with patch('sys.stderr', new_callable=StringIO):
            with self.assertRaises(SystemExit):
                parser.parse_args(['status', '-q', '-j'])


if __name__ == '__main__':
    unittest.main()
