import logging
import threading
from typing import Dict, List, Optional

log = logging.getLogger(__name__)


class InstanceRegistry:
    """
    The set of tool ids currently under supervision in this process.

    Admission is an atomic check-and-insert, so at most one supervision unit
    exists per tool id. Each admitted id owns a cancellation event that its
    unit polls; releasing the id sets the event.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, threading.Event] = {}

    def try_admit(self, tool_id: str) -> bool:
        """
        Registers exclusive supervision rights for `tool_id`.

        :return: True only if this call inserted the id.
        """
        with self._lock:
            if tool_id in self._entries:
                return False
            self._entries[tool_id] = threading.Event()
            return True

    def release(self, tool_id: str) -> bool:
        """
        Drops `tool_id` and signals its unit to stop.

        :return: True if the id was supervised.
        """
        with self._lock:
            cancel_event = self._entries.pop(tool_id, None)
        if cancel_event is None:
            return False
        cancel_event.set()
        log.debug(f"Released supervision rights for tool {tool_id}")
        return True

    def cancel_event(self, tool_id: str) -> Optional[threading.Event]:
        with self._lock:
            return self._entries.get(tool_id)

    def is_supervised(self, tool_id: str) -> bool:
        with self._lock:
            return tool_id in self._entries

    def supervised_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)
