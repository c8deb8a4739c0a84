import sys
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessSnapshot:
    """One live OS process as seen by a single scan."""

    pid: int
    cmdline: Tuple[str, ...]
    exe: Optional[str] = None
    create_time: Optional[float] = None

    @property
    def command_line(self) -> str:
        """The lowercased, space-joined command line used for pattern matching."""
        return " ".join(self.cmdline).lower()


#* --- Process Table ---
def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def scan_processes() -> List[ProcessSnapshot]:
    """
    Snapshots every process visible to the caller.

    Processes that vanish or deny access mid-scan are skipped. If the process
    table cannot be enumerated at all, an empty list is returned and a warning
    is logged: callers cannot tell a degraded scan from "nothing running".
    """
    snapshots: List[ProcessSnapshot] = []
    try:
        for proc in psutil.process_iter(["pid", "cmdline", "exe", "create_time"]):
            info = proc.info
            snapshots.append(ProcessSnapshot(
                pid=info["pid"],
                cmdline=tuple(info.get("cmdline") or ()),
                exe=info.get("exe"),
                create_time=info.get("create_time"),
            ))
    except (psutil.Error, OSError) as e:
        log.warning(f"Process table scan degraded, treating as empty: {e}")
        return []
    return snapshots


#* --- Command Pattern Matching ---
def _path_separator(platform: Optional[str] = None) -> str:
    platform = platform or sys.platform
    return "\\" if platform == "win32" else "/"

def build_cmd_pattern(tool_id: str, platform: Optional[str] = None) -> str:
    """
    Returns the lowercase substring identifying a tool's agent in a command line.

    :param tool_id: The tool identifier.
    :param platform: A sys.platform value; defaults to the host's.
    :return: '/<tool_id>/agent', or '\\<tool_id>\\agent' on Windows.
    """
    sep = _path_separator(platform)
    return f"{sep}{tool_id}{sep}agent".lower()

def matches_pattern(snapshot: ProcessSnapshot, pattern: str, executable: Optional[Path] = None) -> bool:
    """
    Checks whether a process belongs to the tool described by `pattern`.

    Matching is a case-insensitive substring test, so unrelated processes whose
    command line happens to contain the pattern also match. When `executable`
    is given and the snapshot's exe is known, the exe must be that path too.
    Both paths are resolved first since the OS reports the real path.
    """
    if pattern.lower() not in snapshot.command_line:
        return False
    if executable is not None and snapshot.exe:
        return Path(snapshot.exe).resolve() == Path(executable).resolve()
    return True

def find_matching_processes(
    pattern: str,
    executable: Optional[Path] = None,
    scanner: Callable[[], Sequence[ProcessSnapshot]] = scan_processes,
) -> List[ProcessSnapshot]:
    """Scans the process table and returns the snapshots matching `pattern`."""
    return [snap for snap in scanner() if matches_pattern(snap, pattern, executable)]


#* --- Process Creation ---
def get_executable_path(base_path: Path) -> Path:
    """Returns the platform-specific full path for an executable."""
    return base_path.with_suffix(".exe") if sys.platform == "win32" else base_path

def get_agent_executable_path(app_support_dir: Path, tool_id: str, executable_name: str = "agent") -> Path:
    """Returns {app_support_dir}/{tool_id}/agent with the platform executable suffix."""
    return get_executable_path(Path(app_support_dir) / tool_id / executable_name)

def get_popen_detach_kwargs() -> Dict[str, Any]:
    """Returns platform-specific Popen arguments that detach the child from our session."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}

def _read_pipe(pipe, tool_id: str, level: int) -> None:
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{tool_id}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if line:
                proc_logger.log(level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {tool_id} stream exited: {e}")
    finally:
        pipe.close()

def log_process_output(process: subprocess.Popen, tool_id: str) -> List[threading.Thread]:
    """Starts background threads to consume and log a process's stdout/stderr."""
    readers = []
    if process.stdout:
        readers.append(threading.Thread(
            target=_read_pipe, args=(process.stdout, tool_id, logging.INFO),
            daemon=True, name=f"{tool_id}-stdout"
        ))
    if process.stderr:
        readers.append(threading.Thread(
            target=_read_pipe, args=(process.stderr, tool_id, logging.ERROR),
            daemon=True, name=f"{tool_id}-stderr"
        ))
    for reader in readers:
        reader.start()
    return readers

def spawn_agent(
    executable: Path,
    args: Sequence[str],
    tool_id: str,
    capture_output: bool = False,
) -> subprocess.Popen:
    """
    Starts a tool agent in its own session.

    By default the agent inherits the supervisor's stdout/stderr, so it keeps
    running when the supervisor exits. With `capture_output` its output is
    piped into the `proc.<tool_id>` logger instead, which ties the agent to
    the supervisor: it gets a broken pipe once the supervisor is gone.

    :raises OSError: If the executable cannot be started.
    """
    stream = subprocess.PIPE if capture_output else None
    process = subprocess.Popen(
        [str(executable), *args],
        stdout=stream,
        stderr=stream,
        stdin=subprocess.DEVNULL,
        cwd=str(Path(executable).parent),
        **get_popen_detach_kwargs(),
    )
    if capture_output:
        log_process_output(process, tool_id)
    return process
