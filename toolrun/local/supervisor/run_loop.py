import time
import logging
import threading
import subprocess
from enum import Enum
from pathlib import Path
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from toolrun.local.errors import ResolutionError, SpawnError, ToolRunError, WaitError
from toolrun.local.supervisor import process_utils, termination
from toolrun.local.supervisor.backoff import BackoffStrategy, ConstantBackoff
from toolrun.local.tools import InstalledTool, ToolCommandParamsResolver

log = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    COMPLETED = "completed"
    CRASHED = "crashed"
    RESOLUTION_FAILED = "resolution_failed"
    SPAWN_ERROR = "spawn_error"
    WAIT_ERROR = "wait_error"


@dataclass(frozen=True)
class RunOutcome:
    """How one supervised run ended. Only drives the next retry."""

    kind: OutcomeKind
    exit_code: Optional[int] = None
    error: Optional[ToolRunError] = None
    runtime: float = 0.0


class ToolSupervisor:
    """
    Keeps one tool agent running.

    Every cycle stops stale instances of the agent, resolves the run command
    args, starts the agent and blocks until it exits. Whatever the outcome,
    the cycle is followed by a backoff delay and a new cycle. The loop only
    ends when `cancel_event` is set.
    """

    def __init__(
        self,
        tool: InstalledTool,
        resolver: ToolCommandParamsResolver,
        app_support_dir: Path,
        cancel_event: threading.Event,
        backoff: Optional[BackoffStrategy] = None,
        graceful_timeout: float = 5,
        strict_executable_match: bool = False,
        executable_name: str = "agent",
        terminator: Callable[..., termination.TerminationResult] = termination.terminate_matching,
        spawner: Callable[[Path, Sequence[str], str], subprocess.Popen] = process_utils.spawn_agent,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tool = tool
        self.resolver = resolver
        self.cancel_event = cancel_event
        self.backoff = backoff or ConstantBackoff()
        self.graceful_timeout = graceful_timeout
        self.strict_executable_match = strict_executable_match
        self.executable = process_utils.get_agent_executable_path(app_support_dir, tool.tool_agent_id, executable_name)
        self.pattern = process_utils.build_cmd_pattern(tool.tool_agent_id)
        self.last_outcome: Optional[RunOutcome] = None
        self._terminator = terminator
        self._spawner = spawner
        self._clock = clock

    @property
    def tool_id(self) -> str:
        return self.tool.tool_agent_id

    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def run(self) -> None:
        """Supervision loop. Runs until the cancel event is set."""
        log.info(f"Supervision of tool {self.tool_id} started")
        attempt = 0
        while not self.cancelled():
            try:
                outcome = self.run_once()
            except Exception as e:
                log.critical(f"Unexpected error while supervising tool {self.tool_id}: {e}", exc_info=True)
                outcome = None

            if outcome is None and self.cancelled():
                break
            self.last_outcome = outcome

            # A run that outlived the last delay starts a fresh attempt count.
            if outcome is not None and outcome.runtime > self.backoff.delay(max(attempt, 1)):
                attempt = 0
            attempt += 1
            delay = self.backoff.delay(attempt)
            log.info(f"Restarting tool {self.tool_id} in {delay} seconds (attempt {attempt})")
            if self.cancel_event.wait(delay):
                break
        log.info(f"Supervision of tool {self.tool_id} stopped")

    def run_once(self) -> Optional[RunOutcome]:
        """
        Runs a single supervision cycle, without the backoff delay.

        :return: The run outcome, or None if cancelled before the agent was started.
        """
        self.clean_stale_instances()
        if self.cancelled():
            return None

        try:
            args = self.resolve_args()
        except ResolutionError as e:
            log.error(f"Failed to resolve tool {self.tool_id} run command args: {e}")
            return RunOutcome(OutcomeKind.RESOLUTION_FAILED, error=e)

        log.debug(f"Run tool {self.tool_id} with args: {args}")
        started = self._clock()
        try:
            process = self.spawn(args)
        except SpawnError as e:
            log.error(f"Failed to start tool {self.tool_id} process from '{self.executable}': {e.__cause__ or e}")
            return RunOutcome(OutcomeKind.SPAWN_ERROR, error=e)

        log.info(f"Tool {self.tool_id} started with pid {process.pid}")
        try:
            exit_code = self.wait(process)
        except WaitError as e:
            log.error(f"Failed to wait for tool {self.tool_id} process: {e.__cause__ or e}")
            return RunOutcome(OutcomeKind.WAIT_ERROR, error=e, runtime=self._clock() - started)

        runtime = self._clock() - started
        if exit_code == 0:
            log.warning(f"Tool {self.tool_id} completed successfully but should keep running")
            return RunOutcome(OutcomeKind.COMPLETED, exit_code=exit_code, runtime=runtime)

        log.error(f"Tool {self.tool_id} failed with exit code {exit_code}")
        return RunOutcome(OutcomeKind.CRASHED, exit_code=exit_code, runtime=runtime)

    def clean_stale_instances(self) -> termination.TerminationResult:
        """Stops every process matching this tool's pattern, e.g. orphans of a previous host."""
        executable = self.executable if self.strict_executable_match else None
        result = self._terminator(self.pattern, timeout=self.graceful_timeout, executable=executable)
        if result.count:
            log.info(f"Stopped {len(result.stopped)} stale process(es) for tool {self.tool_id}")
        return result

    def resolve_args(self) -> List[str]:
        return self.resolver.process(self.tool_id, list(self.tool.run_command_args))

    def spawn(self, args: Sequence[str]) -> subprocess.Popen:
        try:
            return self._spawner(self.executable, args, self.tool_id)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise SpawnError(f"Failed to start tool process: {e}", self.tool_id) from e

    def wait(self, process: subprocess.Popen) -> int:
        try:
            return process.wait()
        except (OSError, subprocess.SubprocessError) as e:
            raise WaitError(f"Failed to wait for tool process: {e}", self.tool_id) from e
