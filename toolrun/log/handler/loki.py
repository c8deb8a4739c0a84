import sys
import socket
import logging
import requests
import threading
from collections import deque
from typing import Deque, Dict, Any, List, Optional


class LokiHandler(logging.Handler):
    """
    A logging handler that sends records to a Grafana Loki instance
    in batches using a background thread.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, flush_interval: float = 10, batch_size: int = 200):
        """
        Initializes the Loki handler.

        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (sent as 'X-Scope-OrgID').
        :param flush_interval: Seconds between background flushes.
        :param batch_size: Flush as soon as this many records are buffered.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.hostname = socket.gethostname() or 'unknown-host'

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True)
        self.flush_thread.name = "LokiFlushThread"
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        """Periodically flushes the log buffer. Runs in a background thread."""
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def _build_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        if record.name.startswith('proc.'):
            # Agent output: label by tool id, keep the raw line.
            msg = record.getMessage()
            labels = {"logger": "agent", "tool_id": record.name.split('.', 1)[1]}
        else:
            msg = self.format(record)
            labels = {"logger": record.name}

        return {
            "stream": {
                "job": "toolrun",
                "level": record.levelname.lower(),
                "hostname": self.hostname,
                **labels,
            },
            "values": [
                [str(int(record.created * 1e9)), msg]
            ]
        }

    def emit(self, record: logging.LogRecord) -> None:
        """
        Adds a record to the internal buffer, flushing once the batch size is reached.

        :param record: The log record to be processed.
        """
        try:
            log_entry = self._build_entry(record)
            with self.buffer_lock:
                self.log_buffer.append(log_entry)
                if len(self.log_buffer) >= self.batch_size:
                    self._flush_locked()
        except Exception as e:
            print(f"ERROR: LokiHandler failed to process a log record: {e}", file=sys.stderr)

    def _flush_locked(self) -> None:
        """
        Sends the buffered logs to Loki. Assumes the buffer lock is held.
        """
        if not self.log_buffer:
            return

        logs_to_send: List[Dict[str, Any]] = list(self.log_buffer)
        self.log_buffer.clear()

        # Release the lock before making a blocking network call
        self.buffer_lock.release()
        try:
            self._push(logs_to_send)
        finally:
            self.buffer_lock.acquire()

    def _push(self, streams: List[Dict[str, Any]]) -> None:
        headers = {'Content-Type': 'application/json'}
        if self.org_id:
            headers['X-Scope-OrgID'] = self.org_id
        try:
            response = requests.post(self.url, json={"streams": streams}, headers=headers, timeout=5)
            # 204 No Content is the success status for Loki push
            if response.status_code != 204:
                print(
                    f"ERROR: Loki returned non-204 status: {response.status_code} - {response.text}",
                    file=sys.stderr,
                )
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(streams)} logs to Loki: {e}", file=sys.stderr)

    def flush(self) -> None:
        """Triggers a manual flush of the log buffer in a thread-safe manner."""
        with self.buffer_lock:
            self._flush_locked()

    def close(self) -> None:
        """Shuts down the handler, flushing buffered logs and joining the flush thread."""
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        super().close()
