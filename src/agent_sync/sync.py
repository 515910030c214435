"""Turn one detected semaphore into its side effects.

A patch job walks ``detected -> mode_selected -> signal_cleared ->
patch_retrieved -> branch_created -> patch_applied -> committed -> pushed ->
review_requested -> done``; a raw copy walks ``detected -> mode_selected ->
signal_cleared -> workspace_copied -> done``. Any step may end in ``failed``.

The semaphore is cleared before the repository is touched, so a job that
fails afterwards is never retried; the agent has to write a new semaphore.
Patches are only applied to a clean clone. Pushing is the last git step and
every failure before it discards the patch, deletes the new local branch and
restores the branch the clone was on.
"""

from __future__ import annotations

import os
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Literal

from . import exec as exec_util
from . import git, locks, log, paths, semaphore
from .containers import ContainerHandle, ContainerRuntime
from .errors import (
    CopyFailedError,
    GitStepFailedError,
    InvalidSignalError,
    RepoDirtyError,
    RepoMissingError,
    RetrievalFailedError,
    ReviewRequestFailedError,
    SignalUnreadableError,
    SyncFailure,
)
from .models import SyncSettings
from .prs import GithubClient, pr_body

SyncStatus = Literal["succeeded", "failed", "dry_run"]
SyncMode = Literal["unknown", "invalid", "raw_copy", "patch"]

RESUBMIT_HINT = "The semaphore was already cleared; write a new one to resubmit."


@dataclass(frozen=True)
class SyncOutcome:
    """Result of processing one semaphore.

    ``trail`` lists every state the job reached, ending in ``done`` or
    ``failed``.
    """

    status: SyncStatus
    mode: SyncMode
    container: str
    trail: tuple[str, ...]
    repo: str | None = None
    branch: str | None = None
    pr_url: str | None = None
    failure_code: str | None = None
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != "failed"


@dataclass(frozen=True)
class SyncJob:
    container: ContainerHandle
    patch_job: semaphore.PatchJob
    branch: str
    local_patch: Path


@dataclass
class _Progress:
    container: str
    mode: SyncMode = "unknown"
    repo: str | None = None
    branch: str | None = None
    pr_url: str | None = None
    trail: list[str] = field(default_factory=lambda: ["detected"])

    def mark(self, state: str) -> None:
        self.trail.append(state)

    def context(self) -> str:
        parts = [f"container={self.container}"]
        if self.repo:
            parts.append(f"repo={self.repo}")
        if self.branch:
            parts.append(f"branch={self.branch}")
        return ", ".join(parts)

    def outcome(
        self,
        status: SyncStatus,
        *,
        failure: SyncFailure | None = None,
    ) -> SyncOutcome:
        return SyncOutcome(
            status=status,
            mode=self.mode,
            container=self.container,
            trail=tuple(self.trail),
            repo=self.repo,
            branch=self.branch,
            pr_url=self.pr_url,
            failure_code=failure.code if failure else None,
            detail=str(failure) if failure else None,
        )


def branch_name(prefix: str, timestamp: int) -> str:
    """Return the unique branch name for a job.

    Example:
        >>> branch_name("feat", 1700000000)
        'feat-1700000000'
    """
    return f"{prefix}-{timestamp}"


def _temp_patch_path(repo: str, temp_dir: Path | None) -> Path:
    safe_repo = repo.replace("/", "-").replace("\\", "-")
    fd, name = tempfile.mkstemp(
        prefix=f"agent-sync-{safe_repo}-",
        suffix=".patch",
        dir=str(temp_dir) if temp_dir else None,
    )
    os.close(fd)
    return Path(name)


class SyncExecutor:
    """Process semaphores found in containers."""

    def __init__(
        self,
        settings: SyncSettings,
        *,
        runtime: ContainerRuntime | None = None,
        github: GithubClient | None = None,
        runner: exec_util.CommandRunner | None = None,
        clock: Callable[[], float] = time.time,
        temp_dir: Path | None = None,
    ) -> None:
        self.settings = settings
        self.runner = runner
        self.runtime = runtime or ContainerRuntime(
            binary=settings.runtime,
            label=settings.label,
            timeout_seconds=settings.command_timeout_seconds,
            runner=runner,
        )
        self.github = github or GithubClient(
            timeout_seconds=settings.command_timeout_seconds, runner=runner
        )
        self._clock = clock
        self._temp_dir = temp_dir

    def new_job(self, handle: ContainerHandle, patch_job: semaphore.PatchJob) -> SyncJob:
        return SyncJob(
            container=handle,
            patch_job=patch_job,
            branch=branch_name(patch_job.branch, int(self._clock())),
            local_patch=_temp_patch_path(patch_job.repo, self._temp_dir),
        )

    def process(self, handle: ContainerHandle) -> SyncOutcome:
        """Read, decode, and act on the semaphore in ``handle``."""
        progress = _Progress(container=handle.label)
        log.info(f"Signal detected in {handle.label}")
        content = self.runtime.read_file(handle.id, self.settings.semaphore)
        if content is None:
            failure = SignalUnreadableError(
                f"Failed to read semaphore {self.settings.semaphore}"
            )
            log.error(f"{failure} ({progress.context()})")
            progress.mark("failed")
            return progress.outcome("failed", failure=failure)

        signal = semaphore.decode(content)
        progress.mark("mode_selected")
        if isinstance(signal, semaphore.InvalidSignal):
            progress.mode = "invalid"
            log.error(signal.reason)
            log.error(f"Content: {signal.content}")
            self._clear_signal(handle, progress)
            progress.mark("failed")
            return progress.outcome("failed", failure=InvalidSignalError(signal.reason))

        if isinstance(signal, semaphore.RawCopy):
            progress.mode = "raw_copy"
            if self.settings.dry_run:
                return self._dry_run_copy(handle, progress)
            return self._raw_copy(handle, progress)

        progress.mode = "patch"
        progress.repo = signal.repo
        if self.settings.dry_run:
            return self._dry_run_patch(handle, signal, progress)
        return self._patch(handle, signal, progress)

    def _clear_signal(self, handle: ContainerHandle, progress: _Progress) -> None:
        if not self.runtime.remove_file(handle.id, self.settings.semaphore):
            log.warning(f"Failed to remove semaphore ({progress.context()})")
        progress.mark("signal_cleared")

    def _failed(self, progress: _Progress, failure: SyncFailure) -> SyncOutcome:
        log.error(f"{failure} ({progress.context()})")
        if failure.recovery_hint:
            log.warning(failure.recovery_hint)
        progress.mark("failed")
        return progress.outcome("failed", failure=failure)

    def _done(self, progress: _Progress, status: SyncStatus = "succeeded") -> SyncOutcome:
        progress.mark("done")
        return progress.outcome(status)

    def _dry_run_copy(self, handle: ContainerHandle, progress: _Progress) -> SyncOutcome:
        dest = paths.staging_dir(self.settings.staging_root, handle.label)
        log.info(
            f"[dry-run] Would copy workspace {self.settings.workspace_path} "
            f"from {handle.label} to {dest}"
        )
        self._clear_signal(handle, progress)
        return self._done(progress, "dry_run")

    def _dry_run_patch(
        self, handle: ContainerHandle, job: semaphore.PatchJob, progress: _Progress
    ) -> SyncOutcome:
        clone = paths.repo_dir(self.settings.repos_base, job.repo)
        progress.branch = branch_name(job.branch, int(self._clock()))
        self._log_job(job, progress.branch)
        log.info(f"[dry-run] Would copy {job.patch} from container {handle.label}")
        log.info(f"[dry-run] Would apply to {clone} on branch {progress.branch}")
        log.info(f"[dry-run] Would commit with message: {job.message}")
        log.info(f"[dry-run] Would push to {self.settings.remote} and create PR")
        self._clear_signal(handle, progress)
        return self._done(progress, "dry_run")

    def _log_job(self, job: semaphore.PatchJob, branch: str) -> None:
        log.info(f"Repo: {job.repo}")
        log.info(f"Branch: {branch}")
        log.info(f"Message: {job.message}")
        log.info(f"Patch source: {job.patch}")

    # Raw copy

    def _raw_copy(self, handle: ContainerHandle, progress: _Progress) -> SyncOutcome:
        self._clear_signal(handle, progress)
        dest = paths.staging_dir(self.settings.staging_root, handle.label)
        workspace = self.settings.workspace_path
        log.info(f"Copying workspace {workspace} from {handle.label} to {dest}")
        try:
            paths.ensure_dir(dest)
            self._copy_workspace(handle, workspace, dest)
        except OSError as exc:
            return self._failed(progress, CopyFailedError(f"Cannot prepare {dest}: {exc}"))
        except SyncFailure as exc:
            return self._failed(progress, exc)
        self._remove_stray_semaphore(workspace, dest)
        progress.mark("workspace_copied")
        log.success(f"Workspace copied to {dest}")
        return self._done(progress)

    def _copy_workspace(self, handle: ContainerHandle, workspace: str, dest: Path) -> None:
        source = f"{workspace.rstrip('/')}/."
        result = self.runtime.copy_out(handle.id, source, dest)
        if result is not None and result.ok:
            return
        detail = "" if result is None else (result.stderr or "").strip()
        log.warning(f"Direct copy failed, falling back to tar stream {detail}".rstrip())
        archive = self.runtime.stream_tree(handle.id, workspace)
        if archive is None:
            raise CopyFailedError(f"Failed to copy workspace {workspace} from container")
        extracted = exec_util.run_with_runner(
            exec_util.CommandRequest(
                argv=("tar", "-xf", "-", "-C", str(dest)),
                text=False,
                input=archive,
                timeout_seconds=self.settings.command_timeout_seconds,
            ),
            runner=self.runner,
        )
        if extracted is None or not extracted.ok:
            raise CopyFailedError(f"Failed to extract workspace archive into {dest}")

    def _remove_stray_semaphore(self, workspace: str, dest: Path) -> None:
        try:
            relative = PurePosixPath(self.settings.semaphore).relative_to(workspace)
        except ValueError:
            return
        (dest / relative).unlink(missing_ok=True)

    # Patch job

    def _patch(
        self, handle: ContainerHandle, job: semaphore.PatchJob, progress: _Progress
    ) -> SyncOutcome:
        try:
            sync_job = self.new_job(handle, job)
        except OSError as exc:
            self._clear_signal(handle, progress)
            return self._failed(
                progress,
                RetrievalFailedError(
                    f"Cannot create a local patch file: {exc}", recovery_hint=RESUBMIT_HINT
                ),
            )
        progress.branch = sync_job.branch
        self._log_job(job, sync_job.branch)
        try:
            retrieved = self._retrieve_patch(sync_job)
            self._clear_signal(handle, progress)
            if not retrieved:
                raise RetrievalFailedError(
                    "Failed to copy patch from container", recovery_hint=RESUBMIT_HINT
                )
            progress.mark("patch_retrieved")
            clone = paths.repo_dir(self.settings.repos_base, job.repo)
            if not git.has_git_dir(clone):
                raise RepoMissingError(f"Repo not found: {clone}", recovery_hint=RESUBMIT_HINT)
            with locks.repo_lock(clone):
                self._apply_and_publish(sync_job, clone, progress)
        except SyncFailure as exc:
            return self._failed(progress, exc)
        finally:
            sync_job.local_patch.unlink(missing_ok=True)
        log.success(f"Done processing {job.repo}")
        return self._done(progress)

    def _retrieve_patch(self, sync_job: SyncJob) -> bool:
        ref = sync_job.container.id
        source = sync_job.patch_job.patch
        result = self.runtime.copy_out(ref, source, sync_job.local_patch)
        if result is not None and result.ok:
            return True
        log.warning("Direct patch copy failed, reading it through exec instead")
        try:
            return self.runtime.read_file_to(ref, source, sync_job.local_patch)
        except OSError as exc:
            log.error(f"Cannot write {sync_job.local_patch}: {exc}")
            return False

    def _git_step(self, code: str, message: str, step: Callable[[], None]) -> None:
        try:
            step()
        except exec_util.CommandExecutionError as exc:
            raise GitStepFailedError(
                code, f"{message}: {exc}", recovery_hint=RESUBMIT_HINT
            ) from exc

    def _apply_and_publish(self, sync_job: SyncJob, clone: Path, progress: _Progress) -> None:
        remote = self.settings.remote
        timeout = self.settings.command_timeout_seconds
        runner = self.runner
        branch = sync_job.branch

        dirty = git.git_dirty_paths(clone, runner=runner)
        if dirty is None:
            raise RepoDirtyError(
                f"Cannot read the working tree status of {clone}", recovery_hint=RESUBMIT_HINT
            )
        if dirty:
            raise RepoDirtyError(
                f"{clone} has {len(dirty)} uncommitted change(s); refusing to apply",
                recovery_hint="Commit or stash the local changes, then write a new semaphore.",
            )
        self._git_step(
            "fetch_failed",
            f"git fetch {remote} failed",
            lambda: git.git_fetch(clone, remote, runner=runner, timeout_seconds=timeout),
        )
        base = git.git_remote_default_branch(clone, remote, runner=runner)
        prior = git.git_current_ref(clone, runner=runner)
        self._git_step(
            "branch_failed",
            f"Failed to create branch from {remote}/{base}",
            lambda: git.git_create_branch(clone, branch, f"{remote}/{base}", runner=runner),
        )
        progress.mark("branch_created")

        applied = False
        try:
            self._git_step(
                "apply_failed",
                "git apply failed",
                lambda: git.git_apply(clone, sync_job.local_patch, runner=runner),
            )
            applied = True
            log.info("Patch applied successfully")
            progress.mark("patch_applied")
            self._git_step(
                "commit_failed", "git add failed", lambda: git.git_add_all(clone, runner=runner)
            )
            self._git_step(
                "commit_failed",
                "git commit failed",
                lambda: git.git_commit(clone, sync_job.patch_job.message, runner=runner),
            )
            progress.mark("committed")
            self._git_step(
                "push_failed",
                f"git push {remote} {branch} failed",
                lambda: git.git_push(
                    clone, remote, branch, runner=runner, timeout_seconds=timeout
                ),
            )
            progress.mark("pushed")
        except Exception:
            self._rollback(clone, branch, prior, discard_changes=applied)
            raise

        try:
            progress.pr_url = self.github.create_pr(
                clone,
                title=sync_job.patch_job.message,
                body=pr_body(sync_job.container.label, branch),
                head=branch,
                base=base,
            )
        except RuntimeError as exc:
            raise ReviewRequestFailedError(
                f"Branch {branch} was pushed but PR creation failed: {exc}",
                recovery_hint=f"Open the PR for {branch} manually.",
            ) from exc
        finally:
            self._restore(clone, prior)
        progress.mark("review_requested")
        log.success(f"PR created! {progress.pr_url or ''}".rstrip())

    def _restore(self, clone: Path, prior: str | None) -> None:
        if prior and not git.git_checkout(clone, prior, runner=self.runner):
            log.warning(f"Could not return {clone} to {prior}")

    def _rollback(
        self, clone: Path, branch: str, prior: str | None, *, discard_changes: bool
    ) -> None:
        # git apply is atomic; only a successful apply leaves files to discard.
        if discard_changes:
            if not git.git_reset_hard(clone, runner=self.runner):
                log.warning(f"Could not reset {clone}")
            if not git.git_clean_untracked(clone, runner=self.runner):
                log.warning(f"Could not remove untracked files in {clone}")
        if prior is None:
            log.warning(f"Unknown starting branch for {clone}; leaving {branch} checked out")
            return
        self._restore(clone, prior)
        if not git.git_delete_branch(clone, branch, runner=self.runner):
            log.warning(f"Could not delete local branch {branch} in {clone}")
