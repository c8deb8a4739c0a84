import time
import psutil
import logging
import setproctitle
from typing import List
from toolrun.local.config import effective_settings as config
from toolrun.local.errors import ListError
from toolrun.local.supervisor import ToolRunManager
from toolrun.local.supervisor.process_utils import build_cmd_pattern, find_matching_processes, get_process_from_pid

log = logging.getLogger(__name__)
tool_run_manager = ToolRunManager.from_settings()


def handle_run_command() -> None:
    """
    Supervises every installed tool and blocks until interrupted.
    Ctrl+C ends supervision but leaves the agents running; the next run cleans them up.
    """
    setproctitle.setproctitle(config.PROCESS_TITLE)
    try:
        launched = tool_run_manager.run_all()
    except ListError as e:
        print(f"\nERROR: Could not load installed tools: {e}\n")
        return

    if not launched:
        print("No tools to supervise.")
        return

    print(f"Supervising {launched} tool(s). Press Ctrl+C to stop supervising.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        log.info("Supervision interrupted by user.")
        for tool_id in tool_run_manager.registry.supervised_ids():
            tool_run_manager.release(tool_id, kill=False)

def handle_stop_command(args: List[str]) -> None:
    """Handles 'stop <tool_id>'."""
    if not args:
        print("Usage: stop <tool_id>")
        return
    for tool_id in args:
        tool_run_manager.stop_tool(tool_id)

def handle_list_command() -> None:
    """Prints the installed tools and their run command args."""
    try:
        tools = tool_run_manager.installed_tools_service.get_all()
    except ListError as e:
        print(f"\nERROR: {e}\n")
        return

    if not tools:
        print(f"\nNo installed tools in '{config.INSTALLED_TOOLS_PATH}'.\n")
        return

    print("\n--- Installed Tools ---")
    for tool in tools:
        print(f"  - {tool.tool_agent_id:<25} : {' '.join(tool.run_command_args)}")
    print()

def display_status() -> None:
    """Shows every process matching an installed tool's command pattern, with resource usage."""
    try:
        tools = tool_run_manager.installed_tools_service.get_all()
    except ListError as e:
        print(f"\nERROR: {e}\n")
        return

    print("\n--- Tool Agent Status ---")
    total_cpu = 0.0
    total_mem = 0
    for tool in tools:
        matches = find_matching_processes(build_cmd_pattern(tool.tool_agent_id))
        if not matches:
            print(f"  - {tool.tool_agent_id:<25} : STOPPED")
            continue
        for snapshot in matches:
            try:
                p = get_process_from_pid(snapshot.pid)
                cpu = p.cpu_percent(interval=0.1)
                mem = p.memory_info().rss
                total_cpu += cpu
                total_mem += mem
                print(f"  - {tool.tool_agent_id:<25} : PID {snapshot.pid:<8} | Status: {p.status().upper()} | CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
            except psutil.NoSuchProcess:
                print(f"  - {tool.tool_agent_id:<25} : PID {snapshot.pid:<8} | Status: EXITED")
            except psutil.AccessDenied:
                print(f"  - {tool.tool_agent_id:<25} : PID {snapshot.pid:<8} | Status: RUNNING (Access Denied)")

    print(f"\nTOTAL CPU: {total_cpu:.1f}%  |  TOTAL MEMORY: {total_mem/1024/1024:.1f} MB")
    print("-" * 25 + "\n")

def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    config.VERBOSE_LOGGING = not config.VERBOSE_LOGGING
    new_level = logging.DEBUG if config.VERBOSE_LOGGING else logging.INFO

    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if config.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
    else:
        print("Could not find console handler to modify level.")

def print_help():
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  run                    - Start and keep every installed tool running (blocks).")
    print("  stop <tool_id>         - Kill the running agent of a tool.")
    print("  status                 - Show the agent processes of every installed tool.")
    print("  list                   - List installed tools.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Exit the management console.")
    print()
