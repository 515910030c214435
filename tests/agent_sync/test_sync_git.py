from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from agent_sync import exec as exec_util
from agent_sync.containers import ContainerRuntime
from agent_sync.prs import GithubClient
from agent_sync.sync import SyncExecutor
from tests.agent_sync.helpers import (
    HANDLE,
    SEMAPHORE,
    ScriptedRunner,
    git_output,
    init_origin_and_clone,
    make_settings,
    ok,
    patch_signal,
)

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")

NOW = 1700000000
BRANCH = f"feat-{NOW}"

GOOD_PATCH = """\
diff --git a/README.md b/README.md
--- a/README.md
+++ b/README.md
@@ -1 +1,2 @@
 base
+change
"""

BAD_PATCH = """\
diff --git a/README.md b/README.md
--- a/README.md
+++ b/README.md
@@ -1 +1,2 @@
 something else
+change
"""


def _container(patch_text: str) -> ScriptedRunner:
    def write_patch(request: exec_util.CommandRequest) -> None:
        Path(request.argv[-1]).write_text(patch_text, encoding="utf-8")

    return (
        ScriptedRunner()
        .on("podman", "exec", "cid", "cat", SEMAPHORE, reply=ok(patch_signal()))
        .on("podman", "cp", "cid:/tmp/change.patch", reply=ok(effect=write_patch))
        .on("gh", "pr", "create", reply=ok("https://github.com/org/foo/pull/1\n"))
    )


def _setup(tmp_path: Path, patch_text: str) -> tuple[SyncExecutor, ScriptedRunner, Path, Path]:
    settings = make_settings(tmp_path)
    clone = settings.repos_base / "foo"
    origin = init_origin_and_clone(tmp_path, clone)
    container = _container(patch_text)
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    executor = SyncExecutor(
        settings,
        runtime=ContainerRuntime(runner=container),
        github=GithubClient(runner=container, retry_backoff_seconds=0),
        clock=lambda: NOW,
        temp_dir=temp_dir,
    )
    return executor, container, clone, origin


def test_patch_job_pushes_branch_to_origin(tmp_path: Path) -> None:
    executor, container, clone, origin = _setup(tmp_path, GOOD_PATCH)

    outcome = executor.process(HANDLE)

    assert outcome.status == "succeeded", outcome.detail
    assert git_output(clone, "rev-parse", "--abbrev-ref", "HEAD") == "main"
    assert git_output(clone, "status", "--porcelain") == ""
    assert git_output(origin, "show", f"{BRANCH}:README.md") == "base\nchange"
    assert git_output(origin, "log", "-1", "--format=%s", BRANCH) == "Add feature"
    assert container.commands("gh", "pr", "create")


def test_failed_apply_leaves_clone_on_prior_branch(tmp_path: Path) -> None:
    executor, container, clone, origin = _setup(tmp_path, BAD_PATCH)

    outcome = executor.process(HANDLE)

    assert outcome.failure_code == "apply_failed"
    assert git_output(clone, "rev-parse", "--abbrev-ref", "HEAD") == "main"
    assert git_output(clone, "branch", "--list", BRANCH) == ""
    assert git_output(clone, "status", "--porcelain") == ""
    assert git_output(origin, "branch", "--list", BRANCH) == ""
    assert not container.commands("gh")


def test_dirty_clone_is_refused_and_local_edits_survive(tmp_path: Path) -> None:
    executor, container, clone, origin = _setup(tmp_path, GOOD_PATCH)
    (clone / "README.md").write_text("base\nmy unsaved work\n", encoding="utf-8")
    (clone / "notes.txt").write_text("scratch\n", encoding="utf-8")

    outcome = executor.process(HANDLE)

    assert outcome.failure_code == "repo_dirty"
    assert "branch_created" not in outcome.trail
    assert (clone / "README.md").read_text(encoding="utf-8") == "base\nmy unsaved work\n"
    assert (clone / "notes.txt").read_text(encoding="utf-8") == "scratch\n"
    assert git_output(clone, "rev-parse", "--abbrev-ref", "HEAD") == "main"
    assert git_output(clone, "branch", "--list", BRANCH) == ""
    assert container.commands("podman", "exec", "cid", "rm", "-f", SEMAPHORE)


def test_failed_commit_discards_applied_patch(tmp_path: Path) -> None:
    new_file_patch = """\
diff --git a/added.txt b/added.txt
new file mode 100644
--- /dev/null
+++ b/added.txt
@@ -0,0 +1 @@
+added
"""
    executor, _, clone, _ = _setup(tmp_path, new_file_patch)
    hook = clone / ".git" / "hooks" / "pre-commit"
    hook.parent.mkdir(exist_ok=True)
    hook.write_text("#!/bin/sh\nexit 1\n", encoding="utf-8")
    hook.chmod(0o755)

    outcome = executor.process(HANDLE)

    assert outcome.failure_code == "commit_failed"
    assert git_output(clone, "rev-parse", "--abbrev-ref", "HEAD") == "main"
    assert git_output(clone, "status", "--porcelain") == ""
    assert not (clone / "added.txt").exists()
