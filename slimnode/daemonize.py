"""Running slimnode in the background and stopping it via a PID file."""

from __future__ import annotations

import os
import subprocess
import sys
import time
from typing import Sequence

DAEMON_ENV_KEY = "_SLIMNODE_DAEMON"
STOP_TIMEOUT = 3.0
STOP_POLL_INTERVAL = 0.1

_BACKGROUND_FLAGS = frozenset({"--background", "-b"})


class DaemonError(RuntimeError):
    """Raised when starting, finding or stopping the daemon fails."""


def is_daemon_child() -> bool:
    """Whether this process was started as the background child."""
    return os.environ.get(DAEMON_ENV_KEY) == "1"


def filter_background_flag(args: Sequence[str]) -> list[str]:
    """Return ``args`` without ``--background`` and ``-b``."""
    return [arg for arg in args if arg not in _BACKGROUND_FLAGS]


def write_pid(pid_path: str | os.PathLike, pid: int) -> None:
    """Write ``pid`` to ``pid_path``, creating the parent directory."""
    pid_path = os.fspath(pid_path)
    os.makedirs(os.path.dirname(pid_path) or ".", exist_ok=True)
    with open(pid_path, "w", encoding="ascii") as f:
        f.write(str(pid))


def _process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except PermissionError:
        return True
    except (OSError, OverflowError):
        return False
    return True


def read_pid(pid_path: str | os.PathLike) -> int:
    """Read the PID from ``pid_path`` and check that the process is alive.

    Raises ``OSError`` if the file cannot be read and ``DaemonError`` if its
    content is not a PID or the process is not running.
    """
    with open(pid_path, encoding="ascii", errors="replace") as f:
        text = f.read().strip()
    try:
        pid = int(text)
    except ValueError as exc:
        raise DaemonError(f"invalid PID file: {exc}") from exc
    try:
        os.kill(pid, 0)
    except PermissionError:
        pass
    except (OSError, OverflowError) as exc:
        raise DaemonError(f"process {pid} not running: {exc}") from exc
    return pid


def remove_pid(pid_path: str | os.PathLike) -> None:
    """Remove the PID file, ignoring errors."""
    try:
        os.remove(pid_path)
    except OSError:
        pass


def _running_pid(pid_path: str | os.PathLike) -> int | None:
    try:
        return read_pid(pid_path)
    except (OSError, DaemonError):
        return None


def daemonize(pid_path: str | os.PathLike, log_path: str | os.PathLike) -> int:
    """Start this program again in a new session, in the foreground there.

    The child's output goes to ``log_path`` and its PID is written to
    ``pid_path``. Returns the child's PID.
    """
    pid = _running_pid(pid_path)
    if pid is not None:
        raise DaemonError(f"slimnode already running (pid {pid})")

    try:
        log_file = open(log_path, "ab")
    except OSError as exc:
        raise DaemonError(f"opening log file: {exc}") from exc

    command = [sys.executable, *filter_background_flag(sys.orig_argv[1:])]
    env = {**os.environ, DAEMON_ENV_KEY: "1"}
    with log_file:
        try:
            child = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=log_file,
                env=env,
                start_new_session=True,
            )
        except OSError as exc:
            raise DaemonError(f"starting daemon: {exc}") from exc

    try:
        write_pid(pid_path, child.pid)
    except OSError as exc:
        raise DaemonError(f"writing PID file: {exc}") from exc

    print(f"slimnode started (pid {child.pid})")
    print(f"  log: {os.fspath(log_path)}")
    print(f"  pid: {os.fspath(pid_path)}")
    return child.pid


def stop_daemon(
    pid_path: str | os.PathLike,
    timeout: float = STOP_TIMEOUT,
    poll_interval: float = STOP_POLL_INTERVAL,
) -> int:
    """Send SIGTERM to the daemon and wait for it to exit.

    Returns the PID of the stopped process.
    """
    import signal

    pid = _running_pid(pid_path)
    if pid is None:
        raise DaemonError("slimnode is not running")

    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as exc:
        remove_pid(pid_path)
        raise DaemonError(f"sending signal: {exc}") from exc

    deadline = time.monotonic() + timeout
    while True:
        time.sleep(poll_interval)
        if not _process_alive(pid):
            remove_pid(pid_path)
            print("slimnode stopped")
            return pid
        if time.monotonic() >= deadline:
            raise DaemonError(f"slimnode (pid {pid}) did not stop within {timeout}s")