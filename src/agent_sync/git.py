"""Git helper functions used by the sync executor."""

from pathlib import Path

from . import exec as exec_util

DEFAULT_BRANCH_CANDIDATES = ("main", "master")


def git_command(args: list[str]) -> list[str]:
    """Build a git command line.

    Example:
        >>> git_command(["status"])
        ['git', 'status']
    """
    return ["git", *args]


def _request(
    repo_dir: Path, args: list[str], *, timeout_seconds: float | None = None
) -> exec_util.CommandRequest:
    return exec_util.CommandRequest(
        argv=tuple(git_command(["-C", str(repo_dir), *args])),
        timeout_seconds=timeout_seconds,
    )


def _run_git(
    repo_dir: Path,
    args: list[str],
    *,
    runner: exec_util.CommandRunner | None = None,
    timeout_seconds: float | None = None,
) -> exec_util.CommandResult | None:
    return exec_util.run_with_runner(
        _request(repo_dir, args, timeout_seconds=timeout_seconds), runner=runner
    )


def _run_git_checked(
    repo_dir: Path,
    args: list[str],
    *,
    runner: exec_util.CommandRunner | None = None,
    timeout_seconds: float | None = None,
) -> exec_util.CommandResult:
    return exec_util.run_checked(
        _request(repo_dir, args, timeout_seconds=timeout_seconds), runner=runner
    )


def has_git_dir(repo_dir: Path) -> bool:
    """Return whether ``repo_dir`` is an existing clone (contains ``.git``).

    Example:
        >>> has_git_dir(Path("/nonexistent/repo"))
        False
    """
    return (repo_dir / ".git").exists()


def git_current_branch(
    repo_dir: Path, *, runner: exec_util.CommandRunner | None = None
) -> str | None:
    """Return the current branch name, or ``None`` when unavailable."""
    result = _run_git(repo_dir, ["rev-parse", "--abbrev-ref", "HEAD"], runner=runner)
    if result is None or not result.ok:
        return None
    return result.stdout.strip() or None


def git_current_ref(
    repo_dir: Path, *, runner: exec_util.CommandRunner | None = None
) -> str | None:
    """Return the checked-out branch, or the commit hash when HEAD is detached."""
    branch = git_current_branch(repo_dir, runner=runner)
    if branch != "HEAD":
        return branch
    result = _run_git(repo_dir, ["rev-parse", "HEAD"], runner=runner)
    if result is None or not result.ok:
        return None
    return result.stdout.strip() or None


def git_dirty_paths(
    repo_dir: Path, *, runner: exec_util.CommandRunner | None = None
) -> list[str] | None:
    """Return ``git status --porcelain`` entries, or ``None`` when git fails.

    Untracked files count; an empty list means the working tree is clean.
    """
    result = _run_git(repo_dir, ["status", "--porcelain"], runner=runner)
    if result is None or not result.ok:
        return None
    return [line for line in result.stdout.splitlines() if line.strip()]


def git_rev_exists(
    repo_dir: Path, rev: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    """Check whether a revision (e.g. ``origin/main``) resolves."""
    result = _run_git(repo_dir, ["rev-parse", "--verify", "--quiet", rev], runner=runner)
    return result is not None and result.ok


def git_remote_default_branch(
    repo_dir: Path, remote: str, *, runner: exec_util.CommandRunner | None = None
) -> str:
    """Return ``main`` when ``<remote>/main`` exists, otherwise ``master``."""
    primary, fallback = DEFAULT_BRANCH_CANDIDATES
    if git_rev_exists(repo_dir, f"{remote}/{primary}", runner=runner):
        return primary
    return fallback


def git_fetch(
    repo_dir: Path,
    remote: str,
    *,
    runner: exec_util.CommandRunner | None = None,
    timeout_seconds: float | None = None,
) -> None:
    _run_git_checked(repo_dir, ["fetch", remote], runner=runner, timeout_seconds=timeout_seconds)


def git_create_branch(
    repo_dir: Path,
    branch: str,
    start_point: str,
    *,
    runner: exec_util.CommandRunner | None = None,
) -> None:
    """Create ``branch`` at ``start_point`` and check it out."""
    _run_git_checked(repo_dir, ["checkout", "-b", branch, start_point], runner=runner)


def git_apply(
    repo_dir: Path, patch_path: Path, *, runner: exec_util.CommandRunner | None = None
) -> None:
    _run_git_checked(repo_dir, ["apply", str(patch_path)], runner=runner)


def git_add_all(repo_dir: Path, *, runner: exec_util.CommandRunner | None = None) -> None:
    _run_git_checked(repo_dir, ["add", "-A"], runner=runner)


def git_commit(
    repo_dir: Path, message: str, *, runner: exec_util.CommandRunner | None = None
) -> None:
    _run_git_checked(repo_dir, ["commit", "-m", message], runner=runner)


def git_push(
    repo_dir: Path,
    remote: str,
    branch: str,
    *,
    runner: exec_util.CommandRunner | None = None,
    timeout_seconds: float | None = None,
) -> None:
    _run_git_checked(
        repo_dir, ["push", remote, branch], runner=runner, timeout_seconds=timeout_seconds
    )


def git_checkout(
    repo_dir: Path, branch: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    result = _run_git(repo_dir, ["checkout", branch], runner=runner)
    return result is not None and result.ok


def git_reset_hard(repo_dir: Path, *, runner: exec_util.CommandRunner | None = None) -> bool:
    result = _run_git(repo_dir, ["reset", "--hard", "HEAD"], runner=runner)
    return result is not None and result.ok


def git_clean_untracked(
    repo_dir: Path, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    """Remove untracked, non-ignored files and directories."""
    result = _run_git(repo_dir, ["clean", "-fd"], runner=runner)
    return result is not None and result.ok


def git_delete_branch(
    repo_dir: Path, branch: str, *, runner: exec_util.CommandRunner | None = None
) -> bool:
    result = _run_git(repo_dir, ["branch", "-D", branch], runner=runner)
    return result is not None and result.ok
