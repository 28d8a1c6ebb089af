#!/usr/bin/env python3
"""
Tests for rollback trigger implementations.
"""

import unittest
from unittest.mock import MagicMock, patch
import tempfile
import shutil
import os
import stat
import subprocess

from netplan_rollback.exceptions import TriggerError
from netplan_rollback.trigger.memory import InProcessTrigger, ManualClock
from netplan_rollback.trigger.systemd import SystemdTrigger


class TestManualClock(unittest.TestCase):
    """Test cases for ManualClock."""

    def test_advance_and_set(self):
        """Test clock only moves forward."""
        clock = ManualClock(100)
        self.assertEqual(clock(), 100)
        self.assertEqual(clock.advance(5), 105)
        self.assertEqual(clock.set(200), 200)

        with self.assertRaises(ValueError):
            clock.advance(-1)
        with self.assertRaises(ValueError):
            clock.set(150)


class TestInProcessTrigger(unittest.TestCase):
    """Test cases for InProcessTrigger."""

    def setUp(self):
        """Set up test fixtures."""
        self.clock = ManualClock(1000)
        self.trigger = InProcessTrigger(self.clock)

    def test_fires_only_when_due(self):
        """Test callback runs at or after its scheduled time."""
        action = MagicMock()
        self.trigger.arm(1300, action)

        self.assertTrue(self.trigger.is_armed())
        self.assertEqual(self.trigger.scheduled_at, 1300)
        self.assertEqual(self.trigger.run_due(), 0)
        action.assert_not_called()

        self.clock.set(1300)
        self.assertEqual(self.trigger.run_due(), 1)
        action.assert_called_once_with()
        self.assertEqual(self.trigger.fired, [1300])

    def test_disarm(self):
        """Test disarmed trigger never fires."""
        action = MagicMock()
        self.trigger.arm(1300, action)
        self.trigger.disarm()
        self.trigger.disarm()

        self.clock.set(2000)
        self.assertEqual(self.trigger.run_due(), 0)
        self.assertFalse(self.trigger.is_armed())
        action.assert_not_called()

    def test_rearm_same_time_is_noop(self):
        """Test arming twice for one fire time keeps a single entry."""
        first = MagicMock()
        second = MagicMock()
        self.trigger.arm(1300, first)
        self.trigger.arm(1300, second)

        self.clock.set(1300)
        self.trigger.run_due()
        first.assert_called_once_with()
        second.assert_not_called()

    def test_rearm_replaces_schedule(self):
        """Test at most one rollback is held."""
        self.trigger.arm(1300, MagicMock())
        self.trigger.arm(1600, MagicMock())
        self.assertEqual(self.trigger.scheduled_at, 1600)


class TestSystemdTrigger(unittest.TestCase):
    """Test cases for SystemdTrigger."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = {
            'unit_name': 'netplan-auto-rollback',
            'unit_dir': self.temp_dir,
            'systemctl_command': 'systemctl',
            'command_timeout': 5,
        }
        self.trigger = SystemdTrigger(self.config)

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _commands(self, mock_run):
        return [call.args[0][1:] for call in mock_run.call_args_list]

    def test_format_calendar(self):
        """Test fire time is rendered as absolute UTC."""
        self.assertEqual(SystemdTrigger.format_calendar(1300), '1970-01-01 00:21:40 UTC')

    @patch('subprocess.run')
    def test_arm(self, mock_run):
        """Test arming writes units and starts the timer."""
        mock_run.return_value = MagicMock(returncode=0, stderr='')

        self.trigger.arm(1300, '/usr/local/bin/netplan-rollback rollback')

        with open(self.trigger.timer_path) as f:
            timer = f.read()
        with open(self.trigger.service_path) as f:
            service = f.read()

        self.assertIn('OnCalendar=1970-01-01 00:21:40 UTC', timer)
        self.assertIn('Persistent=true', timer)
        self.assertIn('ExecStart=/usr/local/bin/netplan-rollback rollback', service)
        self.assertEqual(stat.S_IMODE(os.stat(self.trigger.timer_path).st_mode), 0o644)

        commands = self._commands(mock_run)
        self.assertIn(['daemon-reload'], commands)
        self.assertIn(['enable', 'netplan-auto-rollback.timer'], commands)
        self.assertEqual(commands[-1], ['restart', 'netplan-auto-rollback.timer'])

    @patch('subprocess.run')
    def test_arm_idempotent(self, mock_run):
        """Test re-arming identical units against an active timer does nothing."""
        mock_run.return_value = MagicMock(returncode=0, stderr='')
        self.trigger.arm(1300, 'rollback')
        mock_run.reset_mock()

        self.trigger.arm(1300, 'rollback')

        self.assertEqual(self._commands(mock_run),
                         [['is-active', '--quiet', 'netplan-auto-rollback.timer']])

    @patch('subprocess.run')
    def test_arm_failure(self, mock_run):
        """Test systemctl failure while arming raises TriggerError."""
        def fake_run(cmd, **kwargs):
            returncode = 1 if cmd[1] == 'enable' else 0
            return MagicMock(returncode=returncode, stderr='Access denied')
        mock_run.side_effect = fake_run

        with self.assertRaises(TriggerError):
            self.trigger.arm(1300, 'rollback')

    @patch('subprocess.run')
    def test_disarm(self, mock_run):
        """Test disarm stops the timer and removes the units."""
        active = {'value': True}

        def fake_run(cmd, **kwargs):
            if cmd[1] == 'stop':
                active['value'] = False
            if cmd[1] == 'is-active':
                return MagicMock(returncode=0 if active['value'] else 3, stderr='')
            return MagicMock(returncode=0, stderr='')
        mock_run.side_effect = fake_run

        self.trigger.arm(1300, 'rollback')
        self.trigger.disarm()

        self.assertFalse(self.trigger.timer_path.exists())
        self.assertFalse(self.trigger.service_path.exists())
        self.assertFalse(self.trigger.is_armed())

    @patch('subprocess.run')
    def test_disarm_when_absent(self, mock_run):
        """Test disarming nothing succeeds without reloading."""
        mock_run.return_value = MagicMock(returncode=5, stderr='not loaded')

        self.trigger.disarm()

        self.assertNotIn(['daemon-reload'], self._commands(mock_run))

    @patch('subprocess.run')
    def test_disarm_timer_still_active(self, mock_run):
        """Test disarm reports a timer it could not stop."""
        mock_run.return_value = MagicMock(returncode=0, stderr='')

        with self.assertRaises(TriggerError):
            self.trigger.disarm()

    @patch('subprocess.run')
    def test_is_armed(self, mock_run):
        """Test armed state comes from systemctl is-active."""
        mock_run.return_value = MagicMock(returncode=0)
        self.assertTrue(self.trigger.is_armed())

        mock_run.return_value = MagicMock(returncode=3)
        self.assertFalse(self.trigger.is_armed())

    @patch('subprocess.run')
    def test_is_armed_query_failure(self, mock_run):
        """Test an unanswerable query is an error, not 'disarmed'."""
        mock_run.side_effect = subprocess.TimeoutExpired('systemctl', 5)

        with self.assertRaises(TriggerError):
            self.trigger.is_armed()


if __name__ == '__main__':
    unittest.main()
