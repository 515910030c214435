"""Per-clone exclusive locks.

Two containers may name the same ``REPO``; jobs against one clone must not
interleave. Threads in one process serialize on an ``RLock`` and separate
processes (for example ``watch-all`` next to the daemon) on ``flock``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

from . import paths
from .errors import RepoLockError

try:
    import fcntl
except ImportError:  # pragma: no cover - platform fallback
    fcntl = None

_REPO_LOCK_GUARD = threading.Lock()
_REPO_LOCAL_LOCKS: dict[str, threading.RLock] = {}
_REPO_LOCK_DEPTH: dict[tuple[int, str], int] = {}
_REPO_LOCK_HANDLES: dict[tuple[int, str], TextIO] = {}


def _repo_lock_key(clone: Path) -> str:
    try:
        return str(clone.resolve())
    except OSError:
        return str(clone)


def _repo_local_lock(key: str) -> threading.RLock:
    with _REPO_LOCK_GUARD:
        lock = _REPO_LOCAL_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _REPO_LOCAL_LOCKS[key] = lock
        return lock


def _acquire_file_lock(handle: TextIO) -> None:
    if fcntl is None:  # pragma: no cover - no-op on unsupported platforms
        return
    fcntl.flock(handle.fileno(), fcntl.LOCK_EX)


def _release_file_lock(handle: TextIO) -> None:
    if fcntl is None:  # pragma: no cover - no-op on unsupported platforms
        return
    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def repo_lock(clone: Path) -> Iterator[None]:
    """Hold the exclusive lock for one repository clone.

    Re-entering from the thread that already holds it does not block.

    Raises:
        RepoLockError: The lock file could not be opened or locked.
    """
    lock_key = _repo_lock_key(clone)
    local_lock = _repo_local_lock(lock_key)
    state_key = (threading.get_ident(), lock_key)

    local_lock.acquire()
    try:
        with _REPO_LOCK_GUARD:
            current_depth = _REPO_LOCK_DEPTH.get(state_key, 0)
            _REPO_LOCK_DEPTH[state_key] = current_depth + 1
        if current_depth == 0:
            lock_path = paths.repo_lock_path(clone)
            try:
                handle = lock_path.open("a+", encoding="utf-8")
            except OSError as exc:
                raise RepoLockError(f"Cannot open lock file {lock_path}: {exc}") from exc
            try:
                _acquire_file_lock(handle)
            except OSError as exc:
                handle.close()
                raise RepoLockError(f"Cannot lock {clone}: {exc}") from exc
            with _REPO_LOCK_GUARD:
                _REPO_LOCK_HANDLES[state_key] = handle
        yield
    finally:
        release_handle = None
        with _REPO_LOCK_GUARD:
            depth = _REPO_LOCK_DEPTH.get(state_key, 0)
            if depth <= 1:
                _REPO_LOCK_DEPTH.pop(state_key, None)
                release_handle = _REPO_LOCK_HANDLES.pop(state_key, None)
            else:
                _REPO_LOCK_DEPTH[state_key] = depth - 1
        if release_handle is not None:
            try:
                _release_file_lock(release_handle)
            finally:
                release_handle.close()
        local_lock.release()
