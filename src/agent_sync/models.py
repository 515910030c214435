"""Pydantic models for agent-sync configuration data."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import paths

ContainerRuntimeName = Literal["podman", "docker"]

DEFAULT_REPOS_BASE = "~/dev/claude/owl"
DEFAULT_SEMAPHORE = "/home/agent/workspace/.ready"


class SyncSettings(BaseModel):
    """Runtime settings shared by every command.

    Attributes:
        runtime: Container runtime CLI (``podman`` or ``docker``).
        repos_base: Directory holding the local repository clones.
        poll_interval: Seconds between polls.
        semaphore: Semaphore path inside each container.
        workspace: Workspace directory inside each container copied in raw
            mode; defaults to the semaphore's parent directory.
        image_filter: Image-name substring used when no labelled container
            is found.
        label: Opt-in container label used for discovery.
        remote: Git remote pushed to.

    Example:
        >>> SyncSettings(semaphore="/work/.ready").workspace
        '/work'
    """

    model_config = ConfigDict(extra="forbid")

    runtime: ContainerRuntimeName = "podman"
    repos_base: Path = Field(default_factory=lambda: Path(DEFAULT_REPOS_BASE))
    poll_interval: float = Field(default=10.0, ge=0)
    semaphore: str = DEFAULT_SEMAPHORE
    workspace: str | None = None
    image_filter: str = "agent"
    label: str = "agent-sync"
    remote: str = "origin"
    pid_file: Path = Field(default_factory=paths.default_pid_file)
    log_file: Path = Field(default_factory=paths.default_log_file)
    staging_root: Path = Field(default_factory=paths.default_staging_root)
    detach: bool = False
    once: bool = False
    dry_run: bool = False
    stop_grace_seconds: float = Field(default=10.0, ge=0)
    command_timeout_seconds: float | None = Field(default=None, gt=0)
    status_tail_lines: int = Field(default=10, ge=0)

    @field_validator("repos_base", "pid_file", "log_file", "staging_root", mode="after")
    @classmethod
    def expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("semaphore", mode="before")
    @classmethod
    def normalize_semaphore(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip()
            if not normalized:
                raise ValueError("semaphore path must not be empty")
            return normalized
        return value

    @model_validator(mode="after")
    def default_workspace(self) -> SyncSettings:
        if not self.workspace:
            self.workspace = str(PurePosixPath(self.semaphore).parent)
        return self

    @property
    def workspace_path(self) -> str:
        return self.workspace or str(PurePosixPath(self.semaphore).parent)
