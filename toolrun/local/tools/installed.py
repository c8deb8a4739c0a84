import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, List, Tuple

from toolrun.local.errors import ListError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstalledTool:
    """An installed tool as recorded by the installer. Never mutated by the supervisor."""

    tool_agent_id: str
    run_command_args: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Any) -> "InstalledTool":
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")

        tool_id = data.get("tool_agent_id")
        if not isinstance(tool_id, str) or not tool_id.strip():
            raise ValueError("'tool_agent_id' must be a non-empty string")
        if tool_id != tool_id.strip():
            raise ValueError(f"'tool_agent_id' {tool_id!r} must not have surrounding whitespace")

        args = data.get("run_command_args", [])
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ValueError(f"'run_command_args' of tool '{tool_id}' must be a list of strings")

        return cls(tool_agent_id=tool_id, run_command_args=tuple(args))


class InstalledToolsService:
    """Reads the installed tools list from its JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def get_all(self) -> List[InstalledTool]:
        """
        Loads every installed tool.

        :return: The installed tools, in file order. Empty if the file does not exist.
        :raises ListError: If the file cannot be read or has an invalid shape.
        """
        if not self.path.exists():
            log.debug(f"Installed tools file '{self.path}' does not exist.")
            return []

        try:
            with self.path.open('r', encoding='utf-8') as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ListError(f"Failed to read installed tools from '{self.path}': {e}") from e

        if not isinstance(raw, list):
            raise ListError(f"Installed tools file '{self.path}' must contain a JSON array.")

        tools: List[InstalledTool] = []
        for index, entry in enumerate(raw):
            try:
                tools.append(InstalledTool.from_dict(entry))
            except ValueError as e:
                raise ListError(f"Invalid installed tool entry #{index} in '{self.path}': {e}") from e
        return tools
