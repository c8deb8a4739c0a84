"""
Collaborators the supervisor depends on: the catalog of installed tools and
the resolver that turns templated run command arguments into concrete ones.
"""
from .installed import InstalledTool, InstalledToolsService
from .params import ToolCommandParamsResolver

__all__ = ["InstalledTool", "InstalledToolsService", "ToolCommandParamsResolver"]
