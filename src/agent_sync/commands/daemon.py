"""Manage the agent-sync sweep daemon."""

from __future__ import annotations

import os
import signal
import sys
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

from .. import config, log
from .. import exec as exec_util
from ..errors import DaemonRunningError
from ..io import die, say
from ..lease import PidLease, pid_running
from ..models import SyncSettings
from ..watcher import SweepScheduler, stop_on_signals
from .resolve import announce, build_context, ensure_dependencies

SIGNAL_DETECTED_MARKER = "Signal detected"
_EXIT_POLL_SECONDS = 0.2
_KILL_WAIT_SECONDS = 2.0


def _child_command() -> list[str]:
    return [sys.executable, "-m", "agent_sync", "daemon", "start", "--foreground"]


def _wait_for_exit(
    pid: int,
    timeout: float,
    *,
    sleep_fn: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    deadline = clock() + timeout
    while pid_running(pid):
        if clock() >= deadline:
            return False
        sleep_fn(_EXIT_POLL_SECONDS)
    return True


def _signal(pid: int, signum: int) -> bool:
    try:
        os.kill(pid, signum)
    except ProcessLookupError:
        return False
    return True


def read_log_summary(log_path: Path, tail_lines: int) -> tuple[int, list[str]]:
    """Return the detected-signal count and the last ``tail_lines`` log lines."""
    if not log_path.exists():
        return 0, []
    detected = 0
    tail: deque[str] = deque(maxlen=max(tail_lines, 0))
    with log_path.open("r", encoding="utf-8", errors="replace") as fh:
        for line in fh:
            if SIGNAL_DETECTED_MARKER in line:
                detected += 1
            if tail.maxlen:
                tail.append(line.rstrip("\n"))
    return detected, list(tail)


def run_daemon(
    settings: SyncSettings,
    *,
    runner: exec_util.CommandRunner | None = None,
    check_dependencies: bool = True,
) -> None:
    """Run the sweep loop in this process while holding the lease."""
    context = build_context(settings, runner=runner, check_dependencies=check_dependencies)
    lease = PidLease(settings.pid_file)
    try:
        pid = lease.acquire()
    except DaemonRunningError as exc:
        die(str(exc))
    scheduler = SweepScheduler(settings, runtime=context.runtime, executor=context.executor)
    try:
        log.info(f"Daemon started (pid {pid})")
        announce(settings, f"all containers matching '{settings.image_filter}'")
        with stop_on_signals(scheduler.stop):
            scheduler.run()
    finally:
        lease.release(pid)
        log.info("Daemon stopped")


def start_daemon(settings: SyncSettings) -> None:
    if not settings.detach:
        run_daemon(settings)
        return
    lease = PidLease(settings.pid_file)
    status = lease.status()
    if status.running:
        die(f"Daemon already running (pid {status.pid})")
    ensure_dependencies(settings)
    lease.discard_stale()
    env = {**os.environ, **config.settings_env(settings), **log.env_overrides()}
    pid = exec_util.spawn_detached(_child_command(), log_path=settings.log_file, env=env)
    try:
        lease.acquire(pid)
    except DaemonRunningError as exc:
        _signal(pid, signal.SIGTERM)
        die(str(exc))
    say(f"Started daemon (pid {pid}); logging to {settings.log_file}")


def stop_daemon(settings: SyncSettings) -> None:
    lease = PidLease(settings.pid_file)
    status = lease.status()
    if status.pid is None:
        say("Daemon not running.")
        return
    if not status.running:
        lease.release()
        say("Daemon not running (removed stale PID file).")
        return
    pid = status.pid
    if _signal(pid, signal.SIGTERM) and not _wait_for_exit(pid, settings.stop_grace_seconds):
        log.warning(
            f"Daemon (pid {pid}) still running after {settings.stop_grace_seconds:g}s; killing"
        )
        _signal(pid, signal.SIGKILL)
        _wait_for_exit(pid, _KILL_WAIT_SECONDS)
    lease.release()
    say(f"Stopped daemon (pid {pid}).")


def status_daemon(settings: SyncSettings) -> None:
    status = PidLease(settings.pid_file).status()
    if status.running:
        say(f"daemon: running (pid {status.pid})")
    elif status.pid is not None:
        say(f"daemon: stopped (stale PID file for pid {status.pid})")
    else:
        say("daemon: stopped")
    say(f"pid file: {settings.pid_file}")
    say(f"log file: {settings.log_file}")
    detected, tail = read_log_summary(settings.log_file, settings.status_tail_lines)
    say(f"signals detected: {detected}")
    if tail:
        say("recent log:")
        for line in tail:
            say(f"  {line}")
