"""agent-sync command-line interface."""

from pathlib import Path
from typing import Annotated, Optional

import typer

from . import __version__, config
from . import log as agent_sync_log
from .commands import daemon as daemon_cmd
from .commands import watch as watch_cmd
from .models import SyncSettings

app = typer.Typer(
    name="agent-sync",
    help=(
        "Sync finished changes from sandboxed agent containers into GitHub PRs.\n\n"
        "An agent writes a semaphore file inside its container; agent-sync copies "
        "the patch out, applies it to a local clone, pushes a new branch and opens "
        "a pull request. An empty semaphore copies the whole workspace instead."
    ),
    no_args_is_help=True,
    add_completion=False,
)
daemon_app = typer.Typer(help="Control the single background sweep daemon.", no_args_is_help=True)
app.add_typer(daemon_app, name="daemon")

ReposBaseOption = Annotated[
    Optional[Path],
    typer.Option("--repos-base", help="Base directory holding the repository clones."),
]
PollOption = Annotated[
    Optional[float], typer.Option("--poll", min=0, help="Poll interval in seconds.")
]
SemaphoreOption = Annotated[
    Optional[str], typer.Option("--semaphore", help="Semaphore path inside the container.")
]
FilterOption = Annotated[
    Optional[str],
    typer.Option(
        "--filter", help="Image-name substring used when no container carries the label."
    ),
]
RuntimeOption = Annotated[
    Optional[str], typer.Option("--runtime", help="Container runtime CLI: podman or docker.")
]
PidFileOption = Annotated[
    Optional[Path], typer.Option("--pid-file", help="Daemon PID file path.")
]
LogFileOption = Annotated[
    Optional[Path], typer.Option("--log-file", help="Daemon log file path.")
]
OnceOption = Annotated[bool, typer.Option("--once", help="Poll once and exit.")]
DryRunOption = Annotated[
    bool, typer.Option("--dry-run", help="Log intended actions without executing them.")
]
DetachOption = Annotated[
    bool, typer.Option("--detach", help="Run the daemon in the background.")
]
ForegroundOption = Annotated[bool, typer.Option("--foreground", hidden=True)]


def _flag(value: bool) -> Optional[bool]:
    return True if value else None


def _resolve_settings(ctx: typer.Context, **overrides: object) -> SyncSettings:
    obj = ctx.find_root().obj or {}
    return config.resolve_settings(overrides, config_file=obj.get("config_file"))


def _validate_log_level(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not agent_sync_log.is_level_name(value):
        raise typer.BadParameter(
            f"expected one of: {', '.join(agent_sync_log.LEVEL_NAMES)}"
        )
    return value


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            callback=_validate_log_level,
            help="Log level: trace, debug, info, success, warning, error.",
        ),
    ] = None,
    no_color: Annotated[bool, typer.Option("--no-color", help="Disable coloured output.")] = False,
    config_file: Annotated[
        Optional[Path], typer.Option("--config", help="JSON settings file to load.")
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version", callback=_version_callback, is_eager=True, help="Show the version."
        ),
    ] = False,
) -> None:
    if log_level is not None:
        agent_sync_log.set_level(log_level)
    if no_color:
        agent_sync_log.set_no_color(True)
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file


@app.command("watch-one")
def watch_one(
    ctx: typer.Context,
    container: Annotated[str, typer.Argument(help="Container id or name to watch.")],
    repos_base: ReposBaseOption = None,
    poll: PollOption = None,
    semaphore: SemaphoreOption = None,
    runtime: RuntimeOption = None,
    once: OnceOption = False,
    dry_run: DryRunOption = False,
) -> None:
    """Watch a single container for its semaphore."""
    settings = _resolve_settings(
        ctx,
        repos_base=repos_base,
        poll_interval=poll,
        semaphore=semaphore,
        runtime=runtime,
        once=_flag(once),
        dry_run=_flag(dry_run),
    )
    watch_cmd.watch_one(settings, container)


@app.command("watch-all")
def watch_all(
    ctx: typer.Context,
    repos_base: ReposBaseOption = None,
    poll: PollOption = None,
    semaphore: SemaphoreOption = None,
    image_filter: FilterOption = None,
    runtime: RuntimeOption = None,
    once: OnceOption = False,
    dry_run: DryRunOption = False,
) -> None:
    """Discover matching containers and watch them concurrently."""
    settings = _resolve_settings(
        ctx,
        repos_base=repos_base,
        poll_interval=poll,
        semaphore=semaphore,
        image_filter=image_filter,
        runtime=runtime,
        once=_flag(once),
        dry_run=_flag(dry_run),
    )
    watch_cmd.watch_all(settings)


@daemon_app.command("start")
def daemon_start(
    ctx: typer.Context,
    repos_base: ReposBaseOption = None,
    poll: PollOption = None,
    semaphore: SemaphoreOption = None,
    image_filter: FilterOption = None,
    runtime: RuntimeOption = None,
    pid_file: PidFileOption = None,
    log_file: LogFileOption = None,
    detach: DetachOption = False,
    foreground: ForegroundOption = False,
    once: OnceOption = False,
    dry_run: DryRunOption = False,
) -> None:
    """Start the sweep daemon (attached unless --detach)."""
    settings = _resolve_settings(
        ctx,
        repos_base=repos_base,
        poll_interval=poll,
        semaphore=semaphore,
        image_filter=image_filter,
        runtime=runtime,
        pid_file=pid_file,
        log_file=log_file,
        detach=False if foreground else _flag(detach),
        once=_flag(once),
        dry_run=_flag(dry_run),
    )
    daemon_cmd.start_daemon(settings)


@daemon_app.command("stop")
def daemon_stop(
    ctx: typer.Context,
    pid_file: PidFileOption = None,
    log_file: LogFileOption = None,
) -> None:
    """Stop the running daemon (SIGTERM, then SIGKILL after the grace period)."""
    settings = _resolve_settings(ctx, pid_file=pid_file, log_file=log_file)
    daemon_cmd.stop_daemon(settings)


@daemon_app.command("status")
def daemon_status(
    ctx: typer.Context,
    pid_file: PidFileOption = None,
    log_file: LogFileOption = None,
) -> None:
    """Report whether the daemon is running and show recent activity."""
    settings = _resolve_settings(ctx, pid_file=pid_file, log_file=log_file)
    daemon_cmd.status_daemon(settings)


def main() -> None:
    app()
