"""
The Supervisor package.
Keeps installed tool agents running.

This package contains the ToolRunManager facade and its helper modules, which
together discover agent processes, stop stale instances, and run one
restart loop per installed tool.
"""
from .supervisor import ToolRunManager
from .kill import ToolKillService
from .registry import InstanceRegistry

__all__ = ['ToolRunManager', 'ToolKillService', 'InstanceRegistry']
