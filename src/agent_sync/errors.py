"""Sync failure contracts.

The executor raises SyncFailure subclasses on expected job, daemon, and setup
failures and catches them at its boundary. Programmer bugs raise normal
exceptions.
"""

from __future__ import annotations

from typing import Literal

SyncFailureCode = Literal[
    "signal_unreadable",
    "invalid_signal",
    "retrieval_failed",
    "repo_missing",
    "repo_dirty",
    "copy_failed",
    "fetch_failed",
    "branch_failed",
    "apply_failed",
    "commit_failed",
    "push_failed",
    "lock_failed",
    "review_request_failed",
    "daemon_running",
    "dependency_missing",
]


class SyncFailure(Exception):
    """Expected failure of a sync job or of daemon control.

    Use ``raise SyncFailure(...) from exc`` to chain a causing exception; it
    is available as ``__cause__``.
    """

    def __init__(
        self,
        code: SyncFailureCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.recovery_hint = recovery_hint


class SignalUnreadableError(SyncFailure):
    """The semaphore exists but could not be read this poll."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("signal_unreadable", message, recovery_hint=recovery_hint)


class InvalidSignalError(SyncFailure):
    """Semaphore content is missing required fields."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("invalid_signal", message, recovery_hint=recovery_hint)


class RetrievalFailedError(SyncFailure):
    """The patch file could not be copied out of the container."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("retrieval_failed", message, recovery_hint=recovery_hint)


class RepoMissingError(SyncFailure):
    """The local clone for the requested repository does not exist."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("repo_missing", message, recovery_hint=recovery_hint)


class RepoDirtyError(SyncFailure):
    """The local clone has uncommitted or untracked changes."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("repo_dirty", message, recovery_hint=recovery_hint)


class CopyFailedError(SyncFailure):
    """Every workspace copy strategy failed."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("copy_failed", message, recovery_hint=recovery_hint)


class GitStepFailedError(SyncFailure):
    """A git step (fetch, branch, apply, commit, push) failed."""


class RepoLockError(SyncFailure):
    """The per-clone lock could not be taken."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("lock_failed", message, recovery_hint=recovery_hint)


class ReviewRequestFailedError(SyncFailure):
    """The branch was pushed but the pull request could not be opened."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("review_request_failed", message, recovery_hint=recovery_hint)


class DaemonRunningError(SyncFailure):
    """Another daemon instance holds the lease."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("daemon_running", message, recovery_hint=recovery_hint)


class DependencyMissingError(SyncFailure):
    """A required external CLI is not installed."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("dependency_missing", message, recovery_hint=recovery_hint)
