# ruff: noqa: E402

import sys
from pathlib import Path

import pytest
from _pytest.doctest import DoctestModule

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import agent_sync.log as agent_sync_log

DOCTEST_MODULES = {
    ROOT / "src" / "agent_sync" / "__init__.py",
    ROOT / "src" / "agent_sync" / "config.py",
    ROOT / "src" / "agent_sync" / "exec.py",
    ROOT / "src" / "agent_sync" / "git.py",
    ROOT / "src" / "agent_sync" / "io.py",
    ROOT / "src" / "agent_sync" / "lease.py",
    ROOT / "src" / "agent_sync" / "log.py",
    ROOT / "src" / "agent_sync" / "models.py",
    ROOT / "src" / "agent_sync" / "paths.py",
    ROOT / "src" / "agent_sync" / "prs.py",
    ROOT / "src" / "agent_sync" / "semaphore.py",
    ROOT / "src" / "agent_sync" / "sync.py",
}


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(agent_sync_log.os.environ):
        if name.startswith("AGENT_SYNC_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(agent_sync_log, "_configured_level", None)
    monkeypatch.setattr(agent_sync_log, "_no_color_override", None)


def pytest_collect_file(
    parent: pytest.Collector, file_path: Path
) -> DoctestModule | None:
    path = file_path if isinstance(file_path, Path) else Path(str(file_path))
    if path in DOCTEST_MODULES:
        return DoctestModule.from_parent(parent, path=path)
    return None
