"""
Exceptions raised by the tool supervisor and its collaborators.

ListError aborts the call that loads the installed tools. The per-cycle errors
(ResolutionError, SpawnError, WaitError) are caught inside a supervision unit,
logged and turned into a retry; they never end the unit.
"""
from typing import Optional


class ToolRunError(Exception):
    """Base class for all supervisor errors."""

    def __init__(self, message: str, tool_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.tool_id = tool_id


class ListError(ToolRunError):
    """The installed tools list could not be read or parsed."""


class ResolutionError(ToolRunError):
    """A templated run command argument could not be resolved."""


class SpawnError(ToolRunError):
    """The tool agent executable could not be started."""


class WaitError(ToolRunError):
    """Waiting for a running tool agent to exit failed."""
