"""Services for avconsole."""

from avconsole.services.connection import Connection
from avconsole.services.executors import (
    PatternMatch,
    base_path_from_pattern,
    delete_files_by_glob,
    download_files_by_glob,
    list_files_by_glob,
    wait_for_pattern,
)
from avconsole.services.pool import ConnectionFactory
from avconsole.services.reconnect import BACKOFF_MS, backoff_delay
from avconsole.services.state import (
    get_factory,
    get_settings,
    reset_state,
    set_factory,
    set_settings,
)
from avconsole.services.transport import AsyncSSHTransport

__all__ = [
    "AsyncSSHTransport",
    "BACKOFF_MS",
    "Connection",
    "ConnectionFactory",
    "PatternMatch",
    "backoff_delay",
    "base_path_from_pattern",
    "delete_files_by_glob",
    "download_files_by_glob",
    "get_factory",
    "get_settings",
    "list_files_by_glob",
    "reset_state",
    "set_factory",
    "set_settings",
    "wait_for_pattern",
]
