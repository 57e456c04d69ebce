"""Remote filesystem entries."""

import posixpath
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RemoteFile:
    """A file or directory listed over the file-transfer channel."""

    name: str
    full_name: str
    is_directory: bool = False
    size: int = 0
    modified: datetime | None = None


def join_remote(directory: str, name: str) -> str:
    """Join a remote directory and entry name, keeping "." listings relative."""
    if directory in ("", "."):
        return name
    return posixpath.join(directory, name)
