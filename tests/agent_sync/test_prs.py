from pathlib import Path

import pytest

from agent_sync import prs
from tests.agent_sync.helpers import MISSING, ScriptedRunner, fail, ok

REPO = Path("/repos/foo")


def _client(runner: ScriptedRunner) -> prs.GithubClient:
    return prs.GithubClient(runner=runner, retry_backoff_seconds=0)


def test_create_pr_returns_url_and_passes_head_and_base() -> None:
    runner = ScriptedRunner().on(
        "gh", "pr", "create", reply=ok("Warning: 1 uncommitted change\nhttps://github.com/o/foo/pull/3\n")
    )

    url = _client(runner).create_pr(
        REPO, title="Add x", body="body", head="feat-1", base="main"
    )

    assert url == "https://github.com/o/foo/pull/3"
    request = runner.requests[0]
    assert request.cwd == REPO
    assert request.argv == (
        "gh", "pr", "create", "--title", "Add x", "--body", "body",
        "--head", "feat-1", "--base", "main",
    )


def test_create_pr_without_url_returns_none() -> None:
    runner = ScriptedRunner().on("gh", reply=ok("done\n"))

    assert _client(runner).create_pr(REPO, title="t", body="b", head="h", base="main") is None


def test_run_retries_transient_failures() -> None:
    runner = ScriptedRunner().on(
        "gh", reply=[fail("HTTP 502: Bad Gateway"), ok("https://github.com/o/foo/pull/4\n")]
    )

    url = _client(runner).create_pr(REPO, title="t", body="b", head="h", base="main")

    assert url == "https://github.com/o/foo/pull/4"
    assert len(runner.requests) == 2


def test_run_does_not_retry_permanent_failures() -> None:
    runner = ScriptedRunner().on("gh", reply=fail("a pull request already exists"))

    with pytest.raises(RuntimeError, match="already exists"):
        _client(runner).run(["gh", "pr", "create"], cwd=REPO)

    assert len(runner.requests) == 1


def test_run_reports_missing_gh() -> None:
    runner = ScriptedRunner().on("gh", reply=MISSING)

    with pytest.raises(RuntimeError, match="missing required command: gh"):
        _client(runner).run(["gh", "pr", "create"])


def test_retry_markers_are_case_insensitive() -> None:
    assert prs._is_retryable_message("Connection RESET by peer") is True
    assert prs._is_retryable_message("GraphQL: Head sha can't be blank") is False
