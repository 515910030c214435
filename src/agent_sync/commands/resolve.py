"""Shared runtime resolution helpers for commands."""

from __future__ import annotations

from dataclasses import dataclass

from .. import exec as exec_util
from .. import log
from ..containers import ContainerRuntime
from ..errors import DependencyMissingError
from ..io import die
from ..models import SyncSettings
from ..sync import SyncExecutor

_INSTALL_HINTS = {
    "gh": "Install: https://cli.github.com",
    "git": "Install: https://git-scm.com",
    "podman": "Install: https://podman.io",
    "docker": "Install: https://docs.docker.com/get-docker/",
}


@dataclass(frozen=True)
class SyncContext:
    settings: SyncSettings
    runtime: ContainerRuntime
    executor: SyncExecutor


def required_commands(settings: SyncSettings) -> list[str]:
    return [settings.runtime, "git", "gh"]


def verify_dependencies(settings: SyncSettings) -> None:
    """Raise ``DependencyMissingError`` naming every CLI not on PATH."""
    missing = exec_util.missing_commands(required_commands(settings))
    if not missing:
        return
    hints = [f"{name} CLI not found. {_INSTALL_HINTS.get(name, '')}".strip() for name in missing]
    raise DependencyMissingError("\n".join(hints))


def ensure_dependencies(settings: SyncSettings) -> None:
    """Exit before watching when a required CLI is missing."""
    try:
        verify_dependencies(settings)
    except DependencyMissingError as exc:
        die(str(exc))


def build_context(
    settings: SyncSettings,
    *,
    runner: exec_util.CommandRunner | None = None,
    check_dependencies: bool = True,
) -> SyncContext:
    """Validate dependencies and wire the runtime adapter and executor."""
    if check_dependencies:
        ensure_dependencies(settings)
    runtime = ContainerRuntime(
        binary=settings.runtime,
        label=settings.label,
        timeout_seconds=settings.command_timeout_seconds,
        runner=runner,
    )
    executor = SyncExecutor(settings, runtime=runtime, runner=runner)
    return SyncContext(settings=settings, runtime=runtime, executor=executor)


def announce(settings: SyncSettings, target: str) -> None:
    """Log the startup banner shared by every watching command."""
    log.warning("Only use with trusted AI agents. Review all PRs before merging.")
    log.info(f"Watching {target}")
    log.info(f"Semaphore: {settings.semaphore}")
    log.info(f"Repos base: {settings.repos_base}")
    log.info(f"Poll interval: {settings.poll_interval:g}s")
    if settings.dry_run:
        log.info("DRY RUN MODE")
