"""Semaphore (readiness signal) codec.

An agent signals a finished change by writing a small line-oriented file::

    REPO=<repository-directory-name>
    PATCH=<absolute-path-to-patch-file-inside-container>
    BRANCH=<branch-name-prefix>
    MESSAGE=<commit-message-and-pr-title>

Whitespace-only content requests a raw copy of the whole workspace instead.
There is no quoting or escaping: the value is everything after the first
``=`` of the first line starting with each key.

Example:
    >>> decode("REPO=foo\\nPATCH=/tmp/a.patch\\nBRANCH=feat\\nMESSAGE=a=b")
    PatchJob(repo='foo', patch='/tmp/a.patch', branch='feat', message='a=b')
    >>> decode("  \\n ")
    RawCopy()
"""

from __future__ import annotations

from dataclasses import dataclass

SEMAPHORE_KEYS = ("REPO", "PATCH", "BRANCH", "MESSAGE")


@dataclass(frozen=True)
class RawCopy:
    """Copy the entire workspace; no git operation."""


@dataclass(frozen=True)
class PatchJob:
    repo: str
    patch: str
    branch: str
    message: str


@dataclass(frozen=True)
class InvalidSignal:
    reason: str
    content: str


Signal = RawCopy | PatchJob | InvalidSignal


def _first_values(content: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in content.split("\n"):
        line = line.removesuffix("\r")
        for key in SEMAPHORE_KEYS:
            if key in values:
                continue
            prefix = f"{key}="
            if line.startswith(prefix):
                values[key] = line[len(prefix) :]
                break
    return values


def decode(content: str) -> Signal:
    """Classify semaphore content.

    Args:
        content: Raw semaphore text as read from the container.

    Returns:
        ``RawCopy`` for whitespace-only content, ``PatchJob`` when all four
        fields are present and non-empty, otherwise ``InvalidSignal``.
    """
    if not "".join(content.split()):
        return RawCopy()
    values = _first_values(content)
    missing = [key for key in SEMAPHORE_KEYS if not values.get(key)]
    if missing:
        return InvalidSignal(
            reason=(
                "semaphore missing required fields "
                f"(need REPO, PATCH, BRANCH, MESSAGE; missing {', '.join(missing)})"
            ),
            content=content,
        )
    return PatchJob(
        repo=values["REPO"],
        patch=values["PATCH"],
        branch=values["BRANCH"],
        message=values["MESSAGE"],
    )


def encode(job: PatchJob) -> str:
    """Render a patch job in semaphore format.

    Example:
        >>> print(encode(PatchJob("foo", "/tmp/a.patch", "feat", "add x")), end="")
        REPO=foo
        PATCH=/tmp/a.patch
        BRANCH=feat
        MESSAGE=add x
    """
    return (
        f"REPO={job.repo}\n"
        f"PATCH={job.patch}\n"
        f"BRANCH={job.branch}\n"
        f"MESSAGE={job.message}\n"
    )
