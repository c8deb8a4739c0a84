"""Tests for the per-tool restart loop."""

from __future__ import annotations

import threading
import unittest
from pathlib import Path
from unittest import mock

from toolrun.local.supervisor import process_utils
from toolrun.local.supervisor.backoff import ConstantBackoff
from toolrun.local.supervisor.run_loop import OutcomeKind, ToolSupervisor
from toolrun.local.supervisor.termination import TerminationResult
from toolrun.local.tools import InstalledTool, ToolCommandParamsResolver

SUPPORT_DIR = Path("/srv/toolrun")


class _CountingEvent(threading.Event):
    """Records backoff waits and cancels itself after `max_waits` of them."""

    def __init__(self, max_waits: int) -> None:
        super().__init__()
        self.max_waits = max_waits
        self.waits = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if len(self.waits) >= self.max_waits:
            self.set()
        return self.is_set()


class _FakeProcess:
    def __init__(self, pid: int, exit_code: int = 0, error: Exception | None = None) -> None:
        self.pid = pid
        self._exit_code = exit_code
        self._error = error

    def wait(self) -> int:
        if self._error is not None:
            raise self._error
        return self._exit_code


def _ticking_clock(step: float = 1.0):
    state = {"now": 0.0}

    def clock() -> float:
        state["now"] += step
        return state["now"]

    return clock


class ToolSupervisorTests(unittest.TestCase):
    def _make(self, tool, cancel_event, spawner, params=None, terminator=None):
        terminator = terminator or mock.Mock(return_value=TerminationResult())
        supervisor = ToolSupervisor(
            tool=tool,
            resolver=ToolCommandParamsResolver(SUPPORT_DIR, params or {}),
            app_support_dir=SUPPORT_DIR,
            cancel_event=cancel_event,
            backoff=ConstantBackoff(5),
            terminator=terminator,
            spawner=spawner,
            clock=_ticking_clock(),
        )
        return supervisor, terminator

    def test_resolution_failure_backs_off_without_spawning(self) -> None:
        tool = InstalledTool("beta", ("--port", "{{PORT}}"))
        event = _CountingEvent(max_waits=1)
        spawner = mock.Mock()
        supervisor, _ = self._make(tool, event, spawner)

        with self.assertLogs("toolrun.local.supervisor.run_loop", level="ERROR") as logs:
            supervisor.run()

        spawner.assert_not_called()
        self.assertEqual(event.waits, [5])
        self.assertEqual(supervisor.last_outcome.kind, OutcomeKind.RESOLUTION_FAILED)
        self.assertTrue(any("beta" in line and "PORT" in line for line in logs.output))

    def test_clean_exit_is_anomalous_and_restarted(self) -> None:
        tool = InstalledTool("gamma", ("--mode", "{{MODE}}"))
        event = _CountingEvent(max_waits=2)
        spawner = mock.Mock(side_effect=lambda exe, args, tool_id: _FakeProcess(pid=100, exit_code=0))
        supervisor, terminator = self._make(tool, event, spawner, params={"MODE": "agent"})

        with self.assertLogs("toolrun.local.supervisor.run_loop", level="WARNING") as logs:
            supervisor.run()

        self.assertEqual(spawner.call_count, 2)
        expected_exe = process_utils.get_agent_executable_path(SUPPORT_DIR, "gamma")
        spawner.assert_called_with(expected_exe, ["--mode", "agent"], "gamma")
        self.assertEqual(event.waits, [5, 5])
        self.assertEqual(supervisor.last_outcome.kind, OutcomeKind.COMPLETED)
        self.assertEqual(supervisor.last_outcome.exit_code, 0)
        self.assertTrue(any("WARNING" in line and "should keep running" in line for line in logs.output))
        # Stale instances are swept before every start, not just the first.
        self.assertEqual(terminator.call_count, 2)
        terminator.assert_called_with(process_utils.build_cmd_pattern("gamma"), timeout=5, executable=None)

    def test_non_zero_exit_is_a_crash_and_restarted(self) -> None:
        tool = InstalledTool("delta")
        event = _CountingEvent(max_waits=1)
        spawner = mock.Mock(return_value=_FakeProcess(pid=7, exit_code=3))
        supervisor, _ = self._make(tool, event, spawner)

        supervisor.run()

        self.assertEqual(supervisor.last_outcome.kind, OutcomeKind.CRASHED)
        self.assertEqual(supervisor.last_outcome.exit_code, 3)
        self.assertEqual(event.waits, [5])

    def test_spawn_error_backs_off(self) -> None:
        tool = InstalledTool("epsilon")
        event = _CountingEvent(max_waits=3)
        spawner = mock.Mock(side_effect=FileNotFoundError("no such file"))
        supervisor, _ = self._make(tool, event, spawner)

        supervisor.run()

        self.assertEqual(spawner.call_count, 3)
        outcome = supervisor.last_outcome
        self.assertEqual(outcome.kind, OutcomeKind.SPAWN_ERROR)
        self.assertIsInstance(outcome.error.__cause__, FileNotFoundError)
        self.assertEqual(outcome.error.tool_id, "epsilon")

    def test_wait_error_backs_off(self) -> None:
        tool = InstalledTool("zeta")
        event = _CountingEvent(max_waits=1)
        spawner = mock.Mock(return_value=_FakeProcess(pid=8, error=OSError("wait failed")))
        supervisor, _ = self._make(tool, event, spawner)

        supervisor.run()

        self.assertEqual(supervisor.last_outcome.kind, OutcomeKind.WAIT_ERROR)

    def test_unexpected_error_does_not_end_the_loop(self) -> None:
        tool = InstalledTool("eta")
        event = _CountingEvent(max_waits=2)
        terminator = mock.Mock(side_effect=RuntimeError("boom"))
        spawner = mock.Mock()
        supervisor, _ = self._make(tool, event, spawner, terminator=terminator)

        with self.assertLogs("toolrun.local.supervisor.run_loop", level="CRITICAL"):
            supervisor.run()

        self.assertEqual(terminator.call_count, 2)
        self.assertEqual(event.waits, [5, 5])

    def test_cancelled_before_start_does_nothing(self) -> None:
        event = threading.Event()
        event.set()
        spawner = mock.Mock()
        supervisor, terminator = self._make(InstalledTool("theta"), event, spawner)

        supervisor.run()

        terminator.assert_not_called()
        spawner.assert_not_called()

    def test_cancel_during_cleaning_skips_spawn(self) -> None:
        event = threading.Event()

        def cancel_while_cleaning(*args, **kwargs):
            event.set()
            return TerminationResult()

        spawner = mock.Mock()
        supervisor, _ = self._make(
            InstalledTool("iota"), event, spawner, terminator=mock.Mock(side_effect=cancel_while_cleaning)
        )

        self.assertIsNone(supervisor.run_once())
        supervisor.run()
        spawner.assert_not_called()

    def test_strict_match_passes_executable_to_terminator(self) -> None:
        terminator = mock.Mock(return_value=TerminationResult())
        supervisor = ToolSupervisor(
            tool=InstalledTool("kappa"),
            resolver=ToolCommandParamsResolver(SUPPORT_DIR),
            app_support_dir=SUPPORT_DIR,
            cancel_event=threading.Event(),
            strict_executable_match=True,
            terminator=terminator,
        )
        supervisor.clean_stale_instances()
        terminator.assert_called_once_with(
            supervisor.pattern, timeout=5, executable=supervisor.executable
        )


if __name__ == "__main__":
    unittest.main()
