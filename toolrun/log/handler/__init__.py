"""
Logging handlers for the supervisor.
This module provides logging handlers that ship records to remote backends.
"""

from .loki import LokiHandler

__all__ = ["LokiHandler"]
