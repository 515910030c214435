"""Container runtime adapter (podman or docker CLI).

Every query is best-effort: a container that vanished between discovery and
use reads as "not running" rather than raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from . import exec as exec_util
from . import log

_PS_FORMAT = "{{.ID}}\t{{.Names}}\t{{.Image}}"
_INSPECT_FORMAT = "{{.Id}}\t{{.Name}}\t{{.Config.Image}}"


@dataclass(frozen=True)
class ContainerHandle:
    """A container observed during one discovery pass."""

    id: str
    name: str
    image: str = ""

    @property
    def label(self) -> str:
        return self.name or self.id


def _parse_rows(output: str) -> list[ContainerHandle]:
    handles: list[ContainerHandle] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        container_id = parts[0].strip()
        if not container_id:
            continue
        name = parts[1].strip().lstrip("/") if len(parts) > 1 else ""
        image = parts[2].strip() if len(parts) > 2 else ""
        handles.append(ContainerHandle(id=container_id, name=name, image=image))
    return handles


@dataclass(frozen=True)
class ContainerRuntime:
    """Typed command-boundary adapter for the container runtime CLI."""

    binary: str = "podman"
    label: str = "agent-sync"
    timeout_seconds: float | None = None
    runner: exec_util.CommandRunner | None = field(default=None, compare=False)

    def _run(
        self,
        args: list[str],
        *,
        text: bool = True,
        input: str | bytes | None = None,
    ) -> exec_util.CommandResult | None:
        return exec_util.run_with_runner(
            exec_util.CommandRequest(
                argv=(self.binary, *args),
                text=text,
                timeout_seconds=self.timeout_seconds,
                input=input,
            ),
            runner=self.runner,
        )

    def _ps(self, extra: list[str]) -> list[ContainerHandle] | None:
        result = self._run(["ps", *extra, "--format", _PS_FORMAT])
        if result is None or not result.ok:
            detail = "" if result is None else (result.stderr or "").strip()
            log.debug(f"{self.binary} ps failed {detail}".rstrip())
            return None
        return _parse_rows(result.stdout)

    def discover(self, image_filter: str) -> list[ContainerHandle]:
        """Return running containers opted in by label or matching an image.

        The label query wins when it yields anything; otherwise every running
        container whose image name contains ``image_filter`` is returned.
        """
        labelled = self._ps(["--filter", f"label={self.label}"])
        if labelled:
            return labelled
        candidates = self._ps([]) or []
        if not image_filter:
            return []
        return [handle for handle in candidates if image_filter in handle.image]

    def resolve(self, ref: str) -> ContainerHandle | None:
        """Look up a single container by id or name."""
        result = self._run(["inspect", "--format", _INSPECT_FORMAT, ref])
        if result is None or not result.ok:
            return None
        handles = _parse_rows(result.stdout)
        return handles[0] if handles else None

    def is_running(self, ref: str) -> bool:
        result = self._run(["inspect", "--format", "{{.State.Running}}", ref])
        if result is None or not result.ok:
            return False
        return result.stdout.strip().lower() == "true"

    def exec(
        self, ref: str, args: list[str], *, text: bool = True
    ) -> exec_util.CommandResult | None:
        return self._run(["exec", ref, *args], text=text)

    def has_file(self, ref: str, path: str) -> bool:
        result = self.exec(ref, ["test", "-f", path])
        return result is not None and result.ok

    def read_file(self, ref: str, path: str) -> str | None:
        """Return file content, or ``None`` when it cannot be read."""
        result = self.exec(ref, ["cat", path])
        if result is None or not result.ok:
            return None
        return result.stdout

    def remove_file(self, ref: str, path: str) -> bool:
        result = self.exec(ref, ["rm", "-f", path])
        return result is not None and result.ok

    def copy_out(self, ref: str, source: str, dest: Path) -> exec_util.CommandResult | None:
        """Copy a file or directory out with ``<runtime> cp``."""
        return self._run(["cp", f"{ref}:{source}", str(dest)])

    def read_file_to(self, ref: str, source: str, dest: Path) -> bool:
        """Copy a file by reading it inside the container and writing locally."""
        result = self.exec(ref, ["cat", source], text=False)
        if result is None or not result.ok:
            return False
        dest.write_bytes(result.output)
        return True

    def stream_tree(self, ref: str, directory: str) -> bytes | None:
        """Return a tar archive of ``directory`` streamed from the container."""
        result = self.exec(ref, ["tar", "-C", directory, "-cf", "-", "."], text=False)
        if result is None or not result.ok:
            return None
        return result.output
