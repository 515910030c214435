"""Single-instance daemon lease backed by a PID file."""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from . import paths
from .errors import DaemonRunningError

try:
    import fcntl
except ImportError:  # pragma: no cover - platform fallback
    fcntl = None

LOCK_SUFFIX = ".lock"


def read_pid(path: Path) -> int | None:
    """Return the recorded process id, or ``None`` when absent or unreadable.

    Example:
        >>> read_pid(Path("/nonexistent/daemon.pid")) is None
        True
    """
    if not path.exists():
        return None
    try:
        value = int(path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None
    return value if value > 0 else None


def pid_running(pid: int) -> bool:
    """Return whether a process with ``pid`` exists.

    Example:
        >>> pid_running(os.getpid())
        True
    """
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _already_running(pid: int | None) -> DaemonRunningError:
    label = f"pid {pid}" if pid else "pid unknown"
    return DaemonRunningError(
        f"Daemon already running ({label})",
        recovery_hint="Stop it first with 'agent-sync daemon stop'.",
    )


@dataclass(frozen=True)
class LeaseStatus:
    pid: int | None
    running: bool


@dataclass(frozen=True)
class PidLease:
    """Exclusive lease: at most one live process id recorded in ``path``.

    Every change to the record happens under an ``flock`` on a sidecar
    ``<path>.lock`` file, so concurrent starters cannot both take over a
    stale record.
    """

    path: Path

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + LOCK_SUFFIX)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        paths.ensure_dir(self.path.parent)
        with self.lock_path.open("a+", encoding="utf-8") as handle:
            if fcntl is not None:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                if fcntl is not None:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def status(self) -> LeaseStatus:
        pid = read_pid(self.path)
        return LeaseStatus(pid=pid, running=bool(pid and pid_running(pid)))

    def acquire(self, pid: int | None = None) -> int:
        """Record ``pid`` (default: this process) as the lease holder.

        A stale record is discarded. A live record naming another process
        raises ``DaemonRunningError``.
        """
        holder = pid or os.getpid()
        with self._locked():
            current = self.status()
            if current.running and current.pid != holder:
                raise _already_running(current.pid)
            if current.pid == holder:
                self.path.write_text(f"{holder}\n", encoding="utf-8")
                return holder
            self.path.unlink(missing_ok=True)
            try:
                fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
            except FileExistsError:
                raise _already_running(read_pid(self.path)) from None
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(f"{holder}\n")
        return holder

    def release(self, pid: int | None = None) -> None:
        """Delete the record; with ``pid``, only when it still names that pid."""
        with self._locked():
            if pid is not None and read_pid(self.path) not in (None, pid):
                return
            self.path.unlink(missing_ok=True)

    def discard_stale(self) -> bool:
        """Remove a record whose process is gone; return whether one was removed."""
        with self._locked():
            current = self.status()
            if current.pid is None or current.running:
                return False
            self.path.unlink(missing_ok=True)
        return True
