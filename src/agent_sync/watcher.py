"""Poll loops: one watcher per container, fan-out over many, or a sweep.

Loops sleep on a ``threading.Event`` so a stop request interrupts the wait
immediately. A job already running finishes (including its rollback) before
the loop notices the request.
"""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from . import log
from .containers import ContainerHandle, ContainerRuntime
from .models import SyncSettings
from .sync import SyncExecutor, SyncOutcome

DEFAULT_JOIN_GRACE_SECONDS = 10.0
_JOIN_POLL_SECONDS = 0.5


class Watcher:
    """Poll one container until it stops running (or once)."""

    def __init__(
        self,
        handle: ContainerHandle,
        *,
        executor: SyncExecutor,
        runtime: ContainerRuntime,
        semaphore_path: str,
        interval: float,
        once: bool = False,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.handle = handle
        self.executor = executor
        self.runtime = runtime
        self.semaphore_path = semaphore_path
        self.interval = interval
        self.once = once
        self._stop = stop_event or threading.Event()

    def stop(self) -> None:
        self._stop.set()

    def poll(self) -> bool:
        """Run one iteration; return ``False`` once the container is gone."""
        if not self.runtime.is_running(self.handle.id):
            log.info(f"Container {self.handle.label} is not running; watcher exiting")
            return False
        if self.runtime.has_file(self.handle.id, self.semaphore_path):
            self.executor.process(self.handle)
        return True

    def run(self) -> None:
        log.info(f"Watching container {self.handle.label}")
        while not self._stop.is_set():
            try:
                if not self.poll():
                    return
            except Exception as exc:
                log.error(f"Poll of {self.handle.label} failed: {exc}")
            if self.once:
                return
            if self._stop.wait(self.interval):
                break
        log.info(f"Stopped watching {self.handle.label}")


class FanOutScheduler:
    """Run one watcher thread per discovered container."""

    def __init__(
        self,
        settings: SyncSettings,
        *,
        runtime: ContainerRuntime,
        executor: SyncExecutor,
        join_grace_seconds: float = DEFAULT_JOIN_GRACE_SECONDS,
    ) -> None:
        self.settings = settings
        self.runtime = runtime
        self.executor = executor
        self.join_grace_seconds = join_grace_seconds
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def stop(self) -> None:
        self._stop.set()

    def start(self, handles: list[ContainerHandle]) -> None:
        for handle in handles:
            watcher = Watcher(
                handle,
                executor=self.executor,
                runtime=self.runtime,
                semaphore_path=self.settings.semaphore,
                interval=self.settings.poll_interval,
                once=self.settings.once,
                stop_event=self._stop,
            )
            thread = threading.Thread(
                target=watcher.run,
                name=f"agent-sync-watch-{handle.label}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def wait(self) -> None:
        """Block until every watcher ends or a stop is requested."""
        while not self._stop.is_set():
            alive = [thread for thread in self._threads if thread.is_alive()]
            if not alive:
                return
            alive[0].join(timeout=_JOIN_POLL_SECONDS)
        deadline = time.monotonic() + self.join_grace_seconds
        for thread in self._threads:
            thread.join(timeout=max(deadline - time.monotonic(), 0.0))
        stuck = [thread.name for thread in self._threads if thread.is_alive()]
        if stuck:
            log.warning(f"Abandoning watchers still busy after stop: {', '.join(stuck)}")

    def run(self) -> int:
        """Discover containers, watch them all, and return how many started."""
        handles = self.runtime.discover(self.settings.image_filter)
        if not handles:
            log.warning(
                f"No containers found (label {self.runtime.label}, "
                f"image filter '{self.settings.image_filter}')"
            )
            return 0
        log.info(f"Found {len(handles)} container(s): {', '.join(h.label for h in handles)}")
        self.start(handles)
        self.wait()
        return len(handles)


class SweepScheduler:
    """Rediscover containers every interval and process ready semaphores."""

    def __init__(
        self,
        settings: SyncSettings,
        *,
        runtime: ContainerRuntime,
        executor: SyncExecutor,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self.runtime = runtime
        self.executor = executor
        self._stop = stop_event or threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def run_once(self) -> list[SyncOutcome]:
        """Sweep every discovered container once and return the outcomes."""
        outcomes: list[SyncOutcome] = []
        for handle in self.runtime.discover(self.settings.image_filter):
            if self._stop.is_set():
                break
            try:
                if not self.runtime.is_running(handle.id):
                    continue
                if not self.runtime.has_file(handle.id, self.settings.semaphore):
                    continue
                outcomes.append(self.executor.process(handle))
            except Exception as exc:
                log.error(f"Sweep of {handle.label} failed: {exc}")
        return outcomes

    def run(self) -> None:
        log.info(f"Sweeping for semaphores every {self.settings.poll_interval:g}s")
        while not self._stop.is_set():
            self.run_once()
            if self.settings.once:
                return
            if self._stop.wait(self.settings.poll_interval):
                break
        log.info("Sweep loop stopped")


@contextmanager
def stop_on_signals(stop: Callable[[], None]) -> Iterator[None]:
    """Route SIGTERM and SIGINT to ``stop`` while the block runs.

    Handlers can only be installed from the main thread; elsewhere the block
    runs without them.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, _frame: object) -> None:
        log.info(f"Received {signal.Signals(signum).name}; stopping")
        stop()

    previous = {
        signum: signal.signal(signum, _handler) for signum in (signal.SIGTERM, signal.SIGINT)
    }
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
