"""Tests for the graceful-then-forced termination of matching processes."""

from __future__ import annotations

import unittest
from unittest import mock

import psutil

from toolrun.local.supervisor import process_utils, termination
from toolrun.local.supervisor.process_utils import ProcessSnapshot


class TerminateMatchingTests(unittest.TestCase):
    def test_no_match_performs_no_kill_attempt(self) -> None:
        stopper = mock.Mock(return_value=True)
        result = termination.terminate_matching(
            "/alpha/agent",
            scanner=lambda: [ProcessSnapshot(pid=1, cmdline=("/sbin/init",))],
            stopper=stopper,
        )
        stopper.assert_not_called()
        self.assertEqual(result.count, 0)

    def test_degraded_scan_is_not_an_error(self) -> None:
        stopper = mock.Mock(return_value=True)
        result = termination.terminate_matching("/alpha/agent", scanner=lambda: [], stopper=stopper)
        self.assertEqual(result.count, 0)
        stopper.assert_not_called()

    def test_substring_matcher_terminates_coincidental_process_too(self) -> None:
        snapshots = [
            ProcessSnapshot(pid=11, cmdline=("/opt/toolrun/alpha/agent", "--port", "80")),
            ProcessSnapshot(pid=12, cmdline=("less", "/home/u/notes/alpha/agent.txt")),
            ProcessSnapshot(pid=13, cmdline=("/opt/toolrun/beta/agent",)),
        ]
        stopper = mock.Mock(return_value=True)
        result = termination.terminate_matching("/alpha/agent", timeout=2, scanner=lambda: snapshots, stopper=stopper)
        self.assertEqual(stopper.call_args_list, [mock.call(11, 2, None), mock.call(12, 2, None)])
        self.assertEqual(result.stopped, [11, 12])
        self.assertEqual(result.count, 2)

    def test_failure_on_one_process_does_not_abort_the_rest(self) -> None:
        snapshots = [
            ProcessSnapshot(pid=21, cmdline=("/x/alpha/agent",)),
            ProcessSnapshot(pid=22, cmdline=("/y/alpha/agent",)),
        ]
        stopper = mock.Mock(side_effect=[False, True])
        with self.assertLogs("toolrun.local.supervisor.termination", level="ERROR"):
            result = termination.terminate_matching("/alpha/agent", scanner=lambda: snapshots, stopper=stopper)
        self.assertEqual(result.failed, [21])
        self.assertEqual(result.stopped, [22])


class StopProcessTests(unittest.TestCase):
    def test_graceful_termination_skips_kill(self) -> None:
        proc = mock.Mock(pid=5)
        with mock.patch.object(process_utils, "get_process_from_pid", return_value=proc):
            self.assertTrue(termination.stop_process(5, timeout=1))
        proc.terminate.assert_called_once_with()
        proc.kill.assert_not_called()

    def test_timeout_escalates_to_kill(self) -> None:
        proc = mock.Mock(pid=6)
        proc.wait.side_effect = [psutil.TimeoutExpired(1, pid=6), None]
        with mock.patch.object(process_utils, "get_process_from_pid", return_value=proc):
            self.assertTrue(termination.stop_process(6, timeout=1))
        proc.kill.assert_called_once_with()

    def test_access_denied_on_both_signals_reports_failure(self) -> None:
        proc = mock.Mock(pid=7)
        proc.terminate.side_effect = psutil.AccessDenied(pid=7)
        proc.kill.side_effect = psutil.AccessDenied(pid=7)
        with mock.patch.object(process_utils, "get_process_from_pid", return_value=proc):
            with self.assertLogs("toolrun.local.supervisor.termination", level="ERROR"):
                self.assertFalse(termination.stop_process(7, timeout=1))

    def test_vanished_process_counts_as_stopped(self) -> None:
        with mock.patch.object(process_utils, "get_process_from_pid", side_effect=psutil.NoSuchProcess(8)):
            self.assertTrue(termination.stop_process(8, timeout=1))

    def test_reused_pid_is_not_signalled(self) -> None:
        proc = mock.Mock(pid=10)
        proc.create_time.return_value = 2000.0
        with mock.patch.object(process_utils, "get_process_from_pid", return_value=proc):
            self.assertTrue(termination.stop_process(10, timeout=1, create_time=1000.0))
        proc.terminate.assert_not_called()
        proc.kill.assert_not_called()

    def test_same_start_time_is_signalled(self) -> None:
        proc = mock.Mock(pid=10)
        proc.create_time.return_value = 1000.0
        with mock.patch.object(process_utils, "get_process_from_pid", return_value=proc):
            self.assertTrue(termination.stop_process(10, timeout=1, create_time=1000.0))
        proc.terminate.assert_called_once_with()

    def test_terminate_matching_passes_scanned_start_time(self) -> None:
        snapshots = [ProcessSnapshot(pid=31, cmdline=("/x/alpha/agent",), create_time=1234.5)]
        stopper = mock.Mock(return_value=True)
        termination.terminate_matching("/alpha/agent", timeout=3, scanner=lambda: snapshots, stopper=stopper)
        stopper.assert_called_once_with(31, 3, 1234.5)

    def test_process_exiting_during_terminate_counts_as_stopped(self) -> None:
        proc = mock.Mock(pid=9)
        proc.terminate.side_effect = psutil.NoSuchProcess(9)
        with mock.patch.object(process_utils, "get_process_from_pid", return_value=proc):
            self.assertTrue(termination.stop_process(9, timeout=1))
        proc.kill.assert_not_called()


if __name__ == "__main__":
    unittest.main()
