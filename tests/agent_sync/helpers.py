from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from agent_sync import exec as exec_util
from agent_sync.containers import ContainerHandle
from agent_sync.models import SyncSettings

SEMAPHORE = "/home/agent/workspace/.ready"
HANDLE = ContainerHandle(id="cid", name="agent-1", image="localhost/agent:latest")


@dataclass(frozen=True)
class Reply:
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    output: bytes = b""
    missing: bool = False
    effect: Callable[[exec_util.CommandRequest], None] | None = None


def ok(
    stdout: str = "",
    *,
    output: bytes = b"",
    effect: Callable[[exec_util.CommandRequest], None] | None = None,
) -> Reply:
    return Reply(stdout=stdout, output=output, effect=effect)


def fail(stderr: str = "boom", *, returncode: int = 1) -> Reply:
    return Reply(returncode=returncode, stderr=stderr)


MISSING = Reply(returncode=127, missing=True)


def normalize(argv: tuple[str, ...]) -> tuple[str, ...]:
    """Drop ``-C <repo>`` from git commands so rules can ignore the clone path."""
    if len(argv) >= 3 and argv[0] == "git" and argv[1] == "-C":
        return ("git", *argv[3:])
    return argv


class ScriptedRunner:
    """Command runner answering from prefix rules and recording every request.

    Rules added later take precedence. Each rule holds one or more replies;
    they are used in order and the last one repeats. Unmatched commands
    succeed with empty output.
    """

    def __init__(self) -> None:
        self.requests: list[exec_util.CommandRequest] = []
        self._rules: list[tuple[tuple[str, ...], list[Reply]]] = []

    def on(self, *prefix: str, reply: Reply | list[Reply]) -> ScriptedRunner:
        replies = list(reply) if isinstance(reply, list) else [reply]
        self._rules.insert(0, (tuple(prefix), replies))
        return self

    def run(self, request: exec_util.CommandRequest) -> exec_util.CommandResult | None:
        self.requests.append(request)
        argv = normalize(request.argv)
        reply = Reply()
        for prefix, replies in self._rules:
            if argv[: len(prefix)] == prefix:
                reply = replies.pop(0) if len(replies) > 1 else replies[0]
                break
        if reply.effect is not None:
            reply.effect(request)
        if reply.missing:
            return None
        return exec_util.CommandResult(
            argv=request.argv,
            returncode=reply.returncode,
            stdout=reply.stdout,
            stderr=reply.stderr,
            output=reply.output,
        )

    def commands(self, *prefix: str) -> list[tuple[str, ...]]:
        """Return normalized argv of every request starting with ``prefix``."""
        found = []
        for request in self.requests:
            argv = normalize(request.argv)
            if argv[: len(prefix)] == prefix:
                found.append(argv)
        return found

    def first(self, *prefix: str) -> exec_util.CommandRequest:
        for request in self.requests:
            if normalize(request.argv)[: len(prefix)] == prefix:
                return request
        raise AssertionError(f"no request matching {prefix!r}")


def make_settings(tmp_path: Path, **overrides: object) -> SyncSettings:
    data: dict[str, object] = {
        "repos_base": tmp_path / "repos",
        "staging_root": tmp_path / "staging",
        "pid_file": tmp_path / "run" / "daemon.pid",
        "log_file": tmp_path / "run" / "daemon.log",
        "poll_interval": 0,
    }
    data.update(overrides)
    return SyncSettings.model_validate(data)


def make_clone(settings: SyncSettings, repo: str = "foo") -> Path:
    clone = settings.repos_base / repo
    (clone / ".git").mkdir(parents=True)
    return clone


def patch_signal(
    repo: str = "foo",
    patch: str = "/tmp/change.patch",
    branch: str = "feat",
    message: str = "Add feature",
) -> str:
    return f"REPO={repo}\nPATCH={patch}\nBRANCH={branch}\nMESSAGE={message}\n"


def _git(*args: str) -> str:
    result = subprocess.run(["git", *args], check=True, capture_output=True, text=True)
    return result.stdout


def init_origin_and_clone(root: Path, clone: Path) -> Path:
    """Create a bare origin with one commit on ``main`` and clone it to ``clone``."""
    origin = root / "origin.git"
    _git("init", "--bare", str(origin))
    _git("-C", str(origin), "symbolic-ref", "HEAD", "refs/heads/main")
    seed = root / "seed"
    _git("init", str(seed))
    _git("-C", str(seed), "config", "user.email", "test@example.com")
    _git("-C", str(seed), "config", "user.name", "Test User")
    (seed / "README.md").write_text("base\n", encoding="utf-8")
    _git("-C", str(seed), "add", "README.md")
    _git("-C", str(seed), "commit", "-m", "chore: initial")
    _git("-C", str(seed), "branch", "-M", "main")
    _git("-C", str(seed), "push", str(origin), "main")
    clone.parent.mkdir(parents=True, exist_ok=True)
    _git("clone", str(origin), str(clone))
    _git("-C", str(clone), "config", "user.email", "test@example.com")
    _git("-C", str(clone), "config", "user.name", "Test User")
    return origin


def git_output(repo: Path, *args: str) -> str:
    return _git("-C", str(repo), *args).strip()
