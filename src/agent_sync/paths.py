"""Path helpers for locating agent-sync data and config files."""

from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

AGENT_SYNC_APP_NAME = "agent-sync"
CONFIG_FILENAME = "config.json"
PID_FILENAME = "daemon.pid"
LOG_FILENAME = "daemon.log"
STAGING_DIRNAME = "staging"
REPO_LOCK_FILENAME = "agent-sync.lock"


def data_dir() -> Path:
    """Return the base agent-sync data directory.

    Example:
        >>> isinstance(data_dir(), Path)
        True
    """
    return Path(user_data_dir(AGENT_SYNC_APP_NAME))


def config_path() -> Path:
    """Return the default JSON config file path.

    Example:
        >>> config_path().name == CONFIG_FILENAME
        True
    """
    return Path(user_config_dir(AGENT_SYNC_APP_NAME)) / CONFIG_FILENAME


def default_pid_file() -> Path:
    """Return the default daemon PID file path.

    Example:
        >>> default_pid_file().name == PID_FILENAME
        True
    """
    return data_dir() / PID_FILENAME


def default_log_file() -> Path:
    """Return the default daemon log file path."""
    return data_dir() / LOG_FILENAME


def default_staging_root() -> Path:
    """Return the root directory receiving raw workspace copies."""
    return data_dir() / STAGING_DIRNAME


def staging_dir(staging_root: Path, container_name: str) -> Path:
    """Return the staging directory for one container.

    Example:
        >>> staging_dir(Path("/tmp/staging"), "web/1").as_posix()
        '/tmp/staging/web-1'
    """
    safe = container_name.strip().lstrip("/").replace("/", "-") or "container"
    return staging_root / safe


def repo_dir(repos_base: Path, repo: str) -> Path:
    """Return the local clone location for a repository name.

    Example:
        >>> repo_dir(Path("/src"), "foo").as_posix()
        '/src/foo'
    """
    return repos_base / repo


def repo_lock_path(clone: Path) -> Path:
    """Return the per-clone lock file path.

    The lock lives inside ``.git`` for normal clones and next to the clone
    when ``.git`` is a file (worktrees, submodules).
    """
    git_dir = clone / ".git"
    if git_dir.is_dir():
        return git_dir / REPO_LOCK_FILENAME
    return clone.parent / f".{clone.name}.{REPO_LOCK_FILENAME}"


def ensure_dir(path: Path) -> None:
    """Create a directory (and parents) when missing."""
    path.mkdir(parents=True, exist_ok=True)
