import logging
import functools
import threading
from typing import Callable, Optional

from toolrun.local.config import effective_settings as config
from toolrun.local.errors import ListError
from toolrun.local.supervisor import process_utils
from toolrun.local.supervisor.backoff import ConstantBackoff
from toolrun.local.supervisor.kill import ToolKillService
from toolrun.local.supervisor.registry import InstanceRegistry
from toolrun.local.supervisor.run_loop import ToolSupervisor
from toolrun.local.tools import InstalledTool, InstalledToolsService, ToolCommandParamsResolver

log = logging.getLogger(__name__)

SupervisorFactory = Callable[[InstalledTool, threading.Event], ToolSupervisor]


class ToolRunManager:
    """
    Starts one supervision unit per installed tool and keeps track of which
    tools are supervised.

    Each admitted tool gets a daemon thread running a ToolSupervisor loop.
    A tool id is admitted at most once until it is released.
    """

    def __init__(
        self,
        installed_tools_service: InstalledToolsService,
        params_resolver: ToolCommandParamsResolver,
        registry: Optional[InstanceRegistry] = None,
        kill_service: Optional[ToolKillService] = None,
        supervisor_factory: Optional[SupervisorFactory] = None,
    ) -> None:
        self.installed_tools_service = installed_tools_service
        self.params_resolver = params_resolver
        self.registry = registry or InstanceRegistry()
        self.kill_service = kill_service or ToolKillService(graceful_timeout=config.GRACEFUL_SHUTDOWN_TIMEOUT)
        self._supervisor_factory = supervisor_factory or self._build_supervisor

    @classmethod
    def from_settings(cls) -> "ToolRunManager":
        """Builds a manager wired to the configured installed tools file and placeholders."""
        return cls(
            installed_tools_service=InstalledToolsService(config.INSTALLED_TOOLS_PATH),
            params_resolver=ToolCommandParamsResolver(config.APP_SUPPORT_DIR, config.COMMAND_PARAMS),
        )

    def _build_supervisor(self, tool: InstalledTool, cancel_event: threading.Event) -> ToolSupervisor:
        return ToolSupervisor(
            tool=tool,
            resolver=self.params_resolver,
            app_support_dir=config.APP_SUPPORT_DIR,
            cancel_event=cancel_event,
            backoff=ConstantBackoff(config.RETRY_DELAY_SECONDS),
            graceful_timeout=config.GRACEFUL_SHUTDOWN_TIMEOUT,
            strict_executable_match=config.STRICT_EXECUTABLE_MATCH,
            executable_name=config.AGENT_EXECUTABLE_NAME,
            spawner=functools.partial(process_utils.spawn_agent, capture_output=config.CAPTURE_AGENT_OUTPUT),
        )

    def run_all(self) -> int:
        """
        Starts supervision for every installed tool not already supervised.

        :return: The number of supervision units launched.
        :raises ListError: If the installed tools cannot be loaded.
        """
        log.info("Starting tool run manager")
        try:
            tools = self.installed_tools_service.get_all()
        except ListError as e:
            log.error(f"Failed to retrieve installed tools list: {e}")
            raise

        if not tools:
            log.info("No installed tools found - nothing to run")
            return 0

        launched = 0
        for tool in tools:
            if self._admit_and_launch(tool):
                launched += 1
        log.info(f"Launched {launched} of {len(tools)} installed tool(s)")
        return launched

    def run_new(self, tool: InstalledTool) -> bool:
        """
        Starts supervision for a tool installed after run_all.

        :return: True if a supervision unit was launched.
        """
        log.info(f"Running new single tool {tool.tool_agent_id}")
        return self._admit_and_launch(tool)

    def stop_tool(self, tool_id: str) -> bool:
        """Kills the tool's agent processes. Its supervision unit will restart it."""
        return self.kill_service.stop_tool(tool_id)

    def release(self, tool_id: str, kill: bool = True) -> bool:
        """
        Ends supervision of a tool: cancels its unit, frees the id for
        re-admission, and optionally kills the running agent.

        :return: True if the tool was supervised.
        """
        released = self.registry.release(tool_id)
        if not released:
            log.warning(f"Tool {tool_id} is not supervised - nothing to release")
        if kill:
            self.kill_service.stop_tool(tool_id)
        return released

    def _admit_and_launch(self, tool: InstalledTool) -> bool:
        tool_id = tool.tool_agent_id
        if not self.registry.try_admit(tool_id):
            log.warning(f"Tool {tool_id} is already running - skipping")
            return False

        cancel_event = self.registry.cancel_event(tool_id)
        if cancel_event is None:
            # Released between admission and launch.
            return False

        try:
            supervisor = self._supervisor_factory(tool, cancel_event)
        except Exception as e:
            # Nothing runs the tool, so it must not stay admitted.
            self.registry.release(tool_id)
            log.error(f"Failed to set up supervision of tool {tool_id}: {e}", exc_info=True)
            return False

        thread = threading.Thread(target=supervisor.run, daemon=True, name=f"ToolSupervisor-{tool_id}")
        thread.start()
        log.info(f"Running tool {tool_id}")
        return True
