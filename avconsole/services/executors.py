"""Channel operations that run against a live shell or file-transfer handle."""

import asyncio
import logging
import os
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from avconsole.models import RemoteFile
from avconsole.protocols import FileTransferClient, ShellStream
from avconsole.utils.glob import base_path, is_match

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


@dataclass
class PatternMatch:
    """Outcome of waiting for command output."""

    success: bool
    output: str
    pattern: str | None = None

    def __bool__(self) -> bool:
        return self.success


def _find_pattern(output: str, patterns: Iterable[str]) -> str | None:
    lowered = output.lower()
    for pattern in patterns:
        if pattern.lower() in lowered:
            return pattern
    return None


async def wait_for_pattern(
    shell: ShellStream,
    success_patterns: Iterable[str] | None,
    failure_patterns: Iterable[str] | None = None,
    timeout: float = 15.0,
    echo: bool = True,
    out: TextIO | None = None,
) -> PatternMatch:
    """Read shell output until a success or failure pattern appears.

    Patterns are matched case-insensitively against everything received so
    far. Failure patterns are checked first.

    Args:
        shell: Live shell stream
        success_patterns: Substrings that mean the command succeeded
        failure_patterns: Substrings that mean the command failed
        timeout: Seconds to wait before giving up
        echo: Write received output to ``out`` as it arrives
        out: Echo destination (default: sys.stdout)

    Returns:
        PatternMatch, truthy only when a success pattern was seen
    """
    success = list(success_patterns or ())
    failure = list(failure_patterns or ())
    out = out or sys.stdout

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    output: list[str] = []

    while loop.time() < deadline:
        if shell.data_available:
            data = await shell.read()
            output.append(data)
            if echo:
                out.write(data)
                out.flush()

            received = "".join(output)
            matched = _find_pattern(received, failure)
            if matched is not None:
                logger.debug("Failure pattern %r matched", matched)
                return PatternMatch(False, received, matched)

            matched = _find_pattern(received, success)
            if matched is not None:
                logger.debug("Success pattern %r matched", matched)
                return PatternMatch(True, received, matched)

        await asyncio.sleep(POLL_INTERVAL)

    logger.warning("No pattern matched within %.1fs", timeout)
    return PatternMatch(False, "".join(output))


def base_path_from_pattern(pattern: str) -> str:
    """Remote directory the matches of a pattern are relative to."""
    return base_path(pattern)


def _listing_base(pattern: str) -> tuple[str, bool]:
    """Directory to list for a pattern and whether to descend into it."""
    double_star = pattern.find("**")
    if double_star >= 0:
        slash = pattern.rfind("/", 0, double_star)
        if slash > 0:
            return pattern[:slash], True
        return ("/" if slash == 0 else "."), True

    slash = pattern.rfind("/")
    if slash > 0:
        return pattern[:slash], False
    return ("/" if slash == 0 else "."), False


async def _walk_files(client: FileTransferClient, directory: str) -> list[RemoteFile]:
    """All files under a directory, skipping ones that cannot be listed."""
    try:
        entries = await client.list_directory(directory)
    except (FileNotFoundError, PermissionError) as e:
        logger.debug("Skipping %s: %s", directory, e)
        return []

    files = []
    for entry in entries:
        if entry.is_directory:
            files.extend(await _walk_files(client, entry.full_name))
        else:
            files.append(entry)
    return files


async def list_files_by_glob(client: FileTransferClient, pattern: str) -> list[RemoteFile]:
    """List remote files whose full path matches a glob pattern.

    Patterns containing ``**`` walk the tree below the directory before the
    first ``**``. Other patterns list only their own directory.

    Raises:
        ValueError: If pattern is empty
    """
    if not pattern:
        raise ValueError("pattern must not be empty")

    pattern = pattern.replace("\\", "/")
    directory, recursive = _listing_base(pattern)

    if recursive:
        candidates = await _walk_files(client, directory)
    else:
        entries = await client.list_directory(directory)
        candidates = [entry for entry in entries if not entry.is_directory]

    matches = [f for f in candidates if is_match(pattern, f.full_name)]
    logger.debug("Pattern %s matched %d of %d files", pattern, len(matches), len(candidates))
    return matches


def _local_path(
    remote: RemoteFile, local_dir: Path, remote_base: str, preserve_structure: bool
) -> Path:
    if not preserve_structure or not remote_base:
        return local_dir / remote.name

    if remote.full_name.startswith(remote_base):
        relative = remote.full_name[len(remote_base) :].lstrip("/")
    else:
        relative = remote.name
    return local_dir.joinpath(*relative.split("/"))


async def download_files_by_glob(
    client: FileTransferClient,
    pattern: str,
    local_dir: str | os.PathLike[str],
    preserve_structure: bool = True,
) -> int:
    """Download every remote file matching a pattern.

    Args:
        client: Live file-transfer client
        pattern: Glob pattern over remote paths
        local_dir: Destination directory (created if missing)
        preserve_structure: Recreate subdirectories below the pattern's base
            path instead of flattening

    Returns:
        Number of files downloaded
    """
    destination = Path(local_dir)
    destination.mkdir(parents=True, exist_ok=True)

    matches = await list_files_by_glob(client, pattern)
    if not matches:
        return 0

    remote_base = base_path_from_pattern(pattern)
    for remote in matches:
        local_path = _local_path(remote, destination, remote_base, preserve_structure)
        local_path.parent.mkdir(parents=True, exist_ok=True)

        await client.download(remote.full_name, str(local_path))
        if remote.modified is not None:
            timestamp = remote.modified.timestamp()
            os.utime(local_path, (timestamp, timestamp))

        logger.debug("Downloaded %s -> %s", remote.full_name, local_path)

    logger.info("Downloaded %d files matching %s", len(matches), pattern)
    return len(matches)


async def delete_files_by_glob(client: FileTransferClient, pattern: str) -> int:
    """Delete every remote file matching a pattern.

    Returns:
        Number of files deleted
    """
    matches = await list_files_by_glob(client, pattern)
    for remote in matches:
        await client.remove(remote.full_name)

    if matches:
        logger.info("Deleted %d files matching %s", len(matches), pattern)
    return len(matches)
