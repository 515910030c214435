from __future__ import annotations

import json
import re
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

import agent_sync.cli as cli
from agent_sync.models import SyncSettings

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

runner = CliRunner()


def _strip_ansi(output: str) -> str:
    return ANSI_ESCAPE_RE.sub("", output)


@pytest.fixture
def config_args(tmp_path: Path) -> list[str]:
    return ["--config", str(tmp_path / "missing.json")]


class Recorder:
    def __init__(self) -> None:
        self.settings: list[SyncSettings] = []
        self.containers: list[str] = []

    def __call__(self, settings: SyncSettings, container: str | None = None) -> None:
        self.settings.append(settings)
        if container is not None:
            self.containers.append(container)


def test_watch_one_requires_container(config_args: list[str]) -> None:
    result = runner.invoke(cli.app, [*config_args, "watch-one"])

    assert result.exit_code == 2


def test_watch_one_passes_container_and_options(config_args: list[str], tmp_path: Path) -> None:
    recorder = Recorder()
    with patch("agent_sync.cli.watch_cmd.watch_one", recorder):
        result = runner.invoke(
            cli.app,
            [
                *config_args,
                "watch-one",
                "agent-1",
                "--repos-base",
                str(tmp_path / "repos"),
                "--poll",
                "2.5",
                "--semaphore",
                "/work/.done",
                "--once",
            ],
        )

    assert result.exit_code == 0, result.output
    assert recorder.containers == ["agent-1"]
    settings = recorder.settings[0]
    assert settings.repos_base == tmp_path / "repos"
    assert settings.poll_interval == 2.5
    assert settings.semaphore == "/work/.done"
    assert settings.workspace == "/work"
    assert settings.once is True
    assert settings.dry_run is False


def test_watch_all_passes_filter_and_dry_run(config_args: list[str]) -> None:
    recorder = Recorder()
    with patch("agent_sync.cli.watch_cmd.watch_all", recorder):
        result = runner.invoke(
            cli.app,
            [*config_args, "watch-all", "--filter", "claude", "--dry-run", "--runtime", "docker"],
        )

    assert result.exit_code == 0, result.output
    settings = recorder.settings[0]
    assert settings.image_filter == "claude"
    assert settings.dry_run is True
    assert settings.runtime == "docker"


def test_config_file_supplies_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"poll_interval": 4, "dry_run": True}), encoding="utf-8")
    recorder = Recorder()
    with patch("agent_sync.cli.watch_cmd.watch_all", recorder):
        result = runner.invoke(cli.app, ["--config", str(config_file), "watch-all"])

    assert result.exit_code == 0, result.output
    assert recorder.settings[0].poll_interval == 4
    assert recorder.settings[0].dry_run is True


def test_invalid_runtime_exits_with_error(config_args: list[str]) -> None:
    with patch("agent_sync.cli.watch_cmd.watch_all") as mock_watch_all:
        result = runner.invoke(cli.app, [*config_args, "watch-all", "--runtime", "lxc"])

    assert result.exit_code == 1
    mock_watch_all.assert_not_called()


@pytest.mark.parametrize(
    ("flags", "expected"),
    [([], False), (["--detach"], True), (["--detach", "--foreground"], False)],
)
def test_daemon_start_detach_flags(
    config_args: list[str], flags: list[str], expected: bool
) -> None:
    recorder = Recorder()
    with patch("agent_sync.cli.daemon_cmd.start_daemon", recorder):
        result = runner.invoke(cli.app, [*config_args, "daemon", "start", *flags])

    assert result.exit_code == 0, result.output
    assert recorder.settings[0].detach is expected


def test_daemon_start_passes_files(config_args: list[str], tmp_path: Path) -> None:
    recorder = Recorder()
    with patch("agent_sync.cli.daemon_cmd.start_daemon", recorder):
        result = runner.invoke(
            cli.app,
            [
                *config_args,
                "daemon",
                "start",
                "--pid-file",
                str(tmp_path / "x.pid"),
                "--log-file",
                str(tmp_path / "x.log"),
            ],
        )

    assert result.exit_code == 0, result.output
    assert recorder.settings[0].pid_file == tmp_path / "x.pid"
    assert recorder.settings[0].log_file == tmp_path / "x.log"


@pytest.mark.parametrize("command", ["stop", "status"])
def test_daemon_control_commands_invoke_handlers(config_args: list[str], command: str) -> None:
    recorder = Recorder()
    with patch(f"agent_sync.cli.daemon_cmd.{command}_daemon", recorder):
        result = runner.invoke(cli.app, [*config_args, "daemon", command])

    assert result.exit_code == 0, result.output
    assert len(recorder.settings) == 1


def test_global_log_level_flag_sets_runtime_level(config_args: list[str]) -> None:
    with (
        patch("agent_sync.cli.watch_cmd.watch_all", Recorder()),
        patch("agent_sync.cli.agent_sync_log.set_level") as mock_set_level,
    ):
        result = runner.invoke(cli.app, ["--log-level", "debug", *config_args, "watch-all"])

    assert result.exit_code == 0, result.output
    mock_set_level.assert_called_once_with("debug")


def test_global_log_level_rejects_unknown_values(config_args: list[str]) -> None:
    result = runner.invoke(cli.app, ["--log-level", "loud", *config_args, "watch-all"], color=False)
    clean_output = _strip_ansi(result.output)

    assert result.exit_code != 0
    assert "--log-level" in clean_output
    assert "expected one of" in clean_output.lower()


def test_no_color_flag_disables_colorized_output(config_args: list[str]) -> None:
    with (
        patch("agent_sync.cli.watch_cmd.watch_all", Recorder()),
        patch("agent_sync.cli.agent_sync_log.set_no_color") as mock_set_no_color,
    ):
        result = runner.invoke(cli.app, ["--no-color", *config_args, "watch-all"])

    assert result.exit_code == 0, result.output
    mock_set_no_color.assert_called_once_with(True)
