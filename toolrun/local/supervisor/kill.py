import logging
from typing import Callable

from toolrun.local.supervisor import process_utils, termination

log = logging.getLogger(__name__)


class ToolKillService:
    """Stops a tool agent's processes on request."""

    def __init__(
        self,
        graceful_timeout: float = 5,
        terminator: Callable[..., termination.TerminationResult] = termination.terminate_matching,
    ) -> None:
        self.graceful_timeout = graceful_timeout
        self._terminator = terminator

    def stop_tool(self, tool_id: str) -> bool:
        """
        Stops every running process matching the tool's command pattern,
        gracefully first and forcibly if needed.

        The supervision unit of the tool, if any, is left alone and will start
        the agent again on its next cycle.

        :param tool_id: The tool to stop.
        :return: Always True, including when nothing was running.
        """
        log.info(f"Attempting to stop tool: {tool_id}")
        pattern = process_utils.build_cmd_pattern(tool_id)
        result = self._terminator(pattern, timeout=self.graceful_timeout)

        if result.stopped:
            log.info(f"Stopped {len(result.stopped)} process(es) for tool: {tool_id}")
        elif not result.failed:
            log.info(f"No running processes found for tool: {tool_id}")
        return True
