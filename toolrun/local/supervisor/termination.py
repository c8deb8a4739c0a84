import psutil
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from toolrun.local.supervisor import process_utils
from toolrun.local.supervisor.process_utils import ProcessSnapshot

log = logging.getLogger(__name__)


@dataclass
class TerminationResult:
    """Per-pid outcome of one termination pass."""

    stopped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        """Number of matched processes that were acted upon."""
        return len(self.stopped) + len(self.failed)


def _terminate_gracefully(proc: psutil.Process, timeout: float) -> bool:
    """Sends SIGTERM and waits for the process to exit. Returns True if it is gone."""
    try:
        proc.terminate()
        proc.wait(timeout=timeout)
        return True
    except psutil.NoSuchProcess:
        return True
    except psutil.TimeoutExpired:
        log.warning(f"Process {proc.pid} did not exit within {timeout}s of SIGTERM.")
        return False
    except psutil.Error as e:
        log.warning(f"Graceful termination of process {proc.pid} failed: {e}")
        return False


def _force_kill(proc: psutil.Process, timeout: float) -> bool:
    """Sends SIGKILL. Returns True if the process is gone afterwards."""
    try:
        proc.kill()
        proc.wait(timeout=timeout)
        return True
    except psutil.NoSuchProcess:
        return True
    except psutil.Error as e:
        log.error(f"Forced kill of process {proc.pid} failed: {e}")
        return False


def stop_process(pid: int, timeout: float, create_time: Optional[float] = None) -> bool:
    """
    Stops a single process, gracefully first and forcibly if that fails.

    :param pid: The process to stop.
    :param timeout: Seconds to wait after each signal.
    :param create_time: Start time recorded by the scan. If the pid now has a
        different start time, the scanned process is gone and the pid belongs
        to another process, which is left alone.
    :return: True if the process no longer runs.
    """
    try:
        proc = process_utils.get_process_from_pid(pid)
        if create_time is not None and proc.create_time() != create_time:
            log.info(f"Process {pid} exited and its pid was reused, leaving the new process alone.")
            return True
    except psutil.NoSuchProcess:
        log.debug(f"Process {pid} already exited.")
        return True
    except psutil.Error as e:
        log.error(f"Cannot access process {pid}: {e}")
        return False

    if _terminate_gracefully(proc, timeout):
        log.info(f"Process {pid} terminated gracefully.")
        return True

    log.warning(f"Failed to terminate process {pid} gracefully, attempting force kill.")
    if _force_kill(proc, timeout):
        log.info(f"Process {pid} force killed.")
        return True
    return False


def terminate_matching(
    pattern: str,
    timeout: float = 5,
    executable: Optional[Path] = None,
    scanner: Callable[[], Sequence[ProcessSnapshot]] = process_utils.scan_processes,
    stopper: Callable[[int, float, Optional[float]], bool] = stop_process,
) -> TerminationResult:
    """
    Stops every process whose command line contains `pattern`.

    Single best-effort pass: a failure on one process is logged and does not
    stop the remaining ones. Zero matches is a normal result.

    :param pattern: The command pattern, see process_utils.build_cmd_pattern.
    :param timeout: Seconds to wait after each signal.
    :param executable: Optional exe path every match must also have.
    :return: The pids that were stopped and those that could not be.
    """
    result = TerminationResult()
    for snapshot in process_utils.find_matching_processes(pattern, executable, scanner):
        log.info(f"Found process matching '{pattern}' with pid {snapshot.pid}")
        if stopper(snapshot.pid, timeout, snapshot.create_time):
            result.stopped.append(snapshot.pid)
        else:
            log.error(f"Failed to terminate process with pid {snapshot.pid} matching '{pattern}'")
            result.failed.append(snapshot.pid)

    if result.failed:
        log.error(
            f"Could not stop {len(result.failed)} of {result.count} process(es) "
            f"matching '{pattern}': {result.failed}"
        )
    return result
