"""Watch one container, or every matching container concurrently."""

from __future__ import annotations

from .. import exec as exec_util
from .. import log
from ..io import die
from ..models import SyncSettings
from ..watcher import FanOutScheduler, Watcher, stop_on_signals
from .resolve import announce, build_context


def watch_one(
    settings: SyncSettings,
    container: str,
    *,
    runner: exec_util.CommandRunner | None = None,
    check_dependencies: bool = True,
) -> None:
    context = build_context(settings, runner=runner, check_dependencies=check_dependencies)
    handle = context.runtime.resolve(container)
    if handle is None:
        die(f"Container {container} not found")
    announce(settings, f"container {handle.label}")
    watcher = Watcher(
        handle,
        executor=context.executor,
        runtime=context.runtime,
        semaphore_path=settings.semaphore,
        interval=settings.poll_interval,
        once=settings.once,
    )
    with stop_on_signals(watcher.stop):
        watcher.run()


def watch_all(
    settings: SyncSettings,
    *,
    runner: exec_util.CommandRunner | None = None,
    check_dependencies: bool = True,
) -> int:
    context = build_context(settings, runner=runner, check_dependencies=check_dependencies)
    announce(settings, f"all containers matching '{settings.image_filter}'")
    scheduler = FanOutScheduler(
        settings,
        runtime=context.runtime,
        executor=context.executor,
        join_grace_seconds=settings.stop_grace_seconds,
    )
    with stop_on_signals(scheduler.stop):
        started = scheduler.run()
    log.info(f"All watchers finished ({started} started)")
    return started
