import logging
from typing import List
from toolrun.local.console.handler import (
    display_status, handle_list_command, handle_run_command, handle_stop_command,
    print_help, toggle_verbose_logging,
)

log = logging.getLogger(__name__)


def execute_command(command: str, args: List[str]) -> bool:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'run', 'stop').
    :param args: A list of arguments for the command.
    :return bool: True if the console should exit, False otherwise.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "run": handle_run_command,
        "stop": lambda: handle_stop_command(args),
        "status": display_status,
        "list": handle_list_command,
        "verbose": toggle_verbose_logging,
        "help": print_help,
        "exit": lambda: True,
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False

    return command_map[command]() is True
