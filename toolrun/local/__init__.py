"""
Local package for the ToolRun supervisor.

This package provides the merged runtime configuration through the
effective_settings singleton.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
