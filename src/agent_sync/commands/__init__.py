"""Command implementations exposed by the agent-sync CLI."""

from .daemon import start_daemon, status_daemon, stop_daemon
from .watch import watch_all, watch_one

__all__ = [
    "start_daemon",
    "status_daemon",
    "stop_daemon",
    "watch_all",
    "watch_one",
]
