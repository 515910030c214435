"""GitHub pull-request creation through the ``gh`` CLI."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from . import exec as exec_util

_GH_RETRY_ATTEMPTS = 2
_GH_RETRY_BACKOFF_SECONDS = 0.4
_GH_RETRY_ERROR_MARKERS = (
    "timed out",
    "timeout",
    "temporarily unavailable",
    "connection reset",
    "connection refused",
    "connection aborted",
    "network",
    "tls",
    "rate limit",
    "502",
    "503",
    "504",
)


def _is_retryable_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _GH_RETRY_ERROR_MARKERS)


def pr_body(container: str, branch: str) -> str:
    """Return the pull-request body recording where a change came from.

    Example:
        >>> print(pr_body("agent-1", "feat-1700000000"))
        Automated PR from agent-sync.
        <BLANKLINE>
        Source: container `agent-1`
        Branch: `feat-1700000000`
    """
    return (
        "Automated PR from agent-sync.\n"
        "\n"
        f"Source: container `{container}`\n"
        f"Branch: `{branch}`"
    )


@dataclass(frozen=True)
class GithubClient:
    """Typed command-boundary adapter for GitHub CLI calls."""

    timeout_seconds: float | None = None
    retry_attempts: int = _GH_RETRY_ATTEMPTS
    retry_backoff_seconds: float = _GH_RETRY_BACKOFF_SECONDS
    runner: exec_util.CommandRunner | None = field(default=None, compare=False)

    def run(self, cmd: list[str], *, cwd: Path | None = None) -> str:
        attempts = max(int(self.retry_attempts), 1)
        last_error: str | None = None
        for attempt in range(1, attempts + 1):
            result = exec_util.run_with_runner(
                exec_util.CommandRequest(
                    argv=tuple(cmd),
                    cwd=cwd,
                    capture_output=True,
                    text=True,
                    timeout_seconds=self.timeout_seconds,
                ),
                runner=self.runner,
            )
            if result is None:
                raise RuntimeError("missing required command: gh")
            if result.ok:
                return result.stdout
            message = (result.stderr or result.stdout or "").strip()
            last_error = message or f"Command failed: {' '.join(cmd)}"
            if attempt < attempts and _is_retryable_message(last_error):
                time.sleep(self.retry_backoff_seconds * attempt)
                continue
            raise RuntimeError(last_error)
        raise RuntimeError(last_error or f"Command failed: {' '.join(cmd)}")

    def create_pr(
        self,
        repo_dir: Path,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> str | None:
        """Open a pull request from ``head`` into ``base``.

        Returns:
            The pull-request URL printed by ``gh``, if any.
        """
        output = self.run(
            [
                "gh",
                "pr",
                "create",
                "--title",
                title,
                "--body",
                body,
                "--head",
                head,
                "--base",
                base,
            ],
            cwd=repo_dir,
        )
        for line in reversed(output.splitlines()):
            if line.strip().startswith("http"):
                return line.strip()
        return None
