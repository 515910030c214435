"""Configuration helpers for agent-sync.

Settings are layered: model defaults, then the JSON config file, then
``AGENT_SYNC_*`` environment variables, then CLI flags. The merged payload is
validated with the ``SyncSettings`` Pydantic model.

Example:
    >>> from pathlib import Path
    >>> resolve_settings(config_file=Path("/nonexistent.json"), env={}).runtime
    'podman'
"""

import json
import os
from pathlib import Path
from typing import Mapping

from pydantic import ValidationError

from . import paths
from .io import die
from .models import SyncSettings

ENV_PREFIX = "AGENT_SYNC_"
_ENV_FIELDS = tuple(name for name in SyncSettings.model_fields if name != "detach")


def load_json(path: Path) -> dict | None:
    """Load a JSON file if it exists.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed payload as a dict, or ``None`` if the file does not exist.

    Example:
        >>> load_json(Path("missing.json")) is None
        True
    """
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def env_overrides(env: Mapping[str, str] | None = None) -> dict[str, object]:
    """Collect settings from ``AGENT_SYNC_<FIELD>`` environment variables.

    Example:
        >>> env_overrides({"AGENT_SYNC_POLL_INTERVAL": "3", "HOME": "/root"})
        {'poll_interval': '3'}
    """
    source = os.environ if env is None else env
    overrides: dict[str, object] = {}
    for name in _ENV_FIELDS:
        raw = source.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None or not raw.strip():
            continue
        overrides[name] = raw.strip()
    return overrides


def parse_settings(payload: dict, source: Path | str | None = None) -> SyncSettings:
    """Validate a settings payload, exiting with a readable error on failure."""
    try:
        return SyncSettings.model_validate(payload)
    except ValidationError as exc:
        location = f" from {source}" if source else ""
        die(f"invalid agent-sync settings{location}:\n{exc}")


def resolve_settings(
    overrides: Mapping[str, object] | None = None,
    *,
    config_file: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> SyncSettings:
    """Merge every configuration layer into validated settings.

    Args:
        overrides: CLI values; ``None`` entries are ignored.
        config_file: JSON file to read instead of the default location.
        env: Environment mapping to read instead of ``os.environ``.

    Returns:
        Validated ``SyncSettings``.
    """
    path = config_file or paths.config_path()
    payload: dict[str, object] = {}
    try:
        file_payload = load_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        die(f"failed to read config file {path}: {exc}")
    if file_payload is not None:
        if not isinstance(file_payload, dict):
            die(f"config file {path} must contain a JSON object")
        payload.update(file_payload)
    payload.update(env_overrides(env))
    if overrides:
        payload.update({key: value for key, value in overrides.items() if value is not None})
    return parse_settings(payload, source=path if file_payload is not None else None)


def settings_env(settings: SyncSettings) -> dict[str, str]:
    """Render settings as ``AGENT_SYNC_*`` variables for a child process.

    Example:
        >>> settings_env(SyncSettings(poll_interval=3))["AGENT_SYNC_POLL_INTERVAL"]
        '3.0'
    """
    rendered: dict[str, str] = {}
    for name in _ENV_FIELDS:
        value = getattr(settings, name)
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        rendered[f"{ENV_PREFIX}{name.upper()}"] = str(value)
    return rendered
