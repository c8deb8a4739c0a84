import re
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from toolrun.local.errors import ResolutionError

log = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


class ToolCommandParamsResolver:
    """
    Replaces {{NAME}} placeholders in a tool's run command arguments.

    TOOL_ID, APP_SUPPORT_DIR and TOOL_DIR are always available; any other
    name must be supplied through `params`.
    """

    def __init__(self, app_support_dir: Path, params: Optional[Dict[str, str]] = None) -> None:
        self.app_support_dir = Path(app_support_dir)
        self.params: Dict[str, str] = dict(params or {})

    def _values_for(self, tool_id: str) -> Dict[str, str]:
        values = dict(self.params)
        values.update({
            "TOOL_ID": tool_id,
            "APP_SUPPORT_DIR": str(self.app_support_dir),
            "TOOL_DIR": str(self.app_support_dir / tool_id),
        })
        return values

    def process(self, tool_id: str, args: Sequence[str]) -> List[str]:
        """
        Resolves every placeholder in `args`.

        :param tool_id: The tool whose arguments are being resolved.
        :param args: The templated arguments. Left untouched.
        :return: A new list of concrete arguments.
        :raises ResolutionError: If an argument names an unknown placeholder.
        """
        values = self._values_for(tool_id)

        def substitute(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in values:
                raise ResolutionError(f"Unknown placeholder '{{{{{name}}}}}' in run command args", tool_id)
            return values[name]

        return [PLACEHOLDER_PATTERN.sub(substitute, arg) for arg in args]
