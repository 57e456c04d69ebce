"""Protocol interfaces for the transport seam.

Connection depends on these abstractions, not on asyncssh directly.
The asyncssh-backed implementation lives in avconsole.services.transport;
tests substitute in-memory fakes.

Usage Example:

    from avconsole.protocols import Transport

    async def probe(transport: Transport, target: ConnectionTarget) -> bool:
        '''Function depends on protocol, not concrete implementation.'''
        session = await transport.open_session(target, on_lost=lambda s, e: None)
        try:
            return session.is_live
        finally:
            session.close()

Liveness contract:
    Every handle exposes ``is_live``. A handle whose ``is_live`` is False is
    dead and must be released, never used again. Sessions additionally report
    loss asynchronously through the ``on_lost`` callback given to
    ``Transport.open_session``; the callback runs on the transport's own
    reader and must not block.
"""

from collections.abc import Callable
from datetime import datetime
from os import PathLike
from typing import BinaryIO, Protocol, runtime_checkable

from avconsole.models import ConnectionTarget, RemoteFile, TerminalGeometry

LocalFile = str | PathLike[str] | BinaryIO
ProgressCallback = Callable[[int], None]


@runtime_checkable
class ShellStream(Protocol):
    """Interactive shell channel."""

    @property
    def is_live(self) -> bool:
        """Whether the stream can still be read and written."""
        ...

    @property
    def data_available(self) -> bool:
        """Whether buffered output is waiting to be read."""
        ...

    async def read(self) -> str:
        """Wait for output and return everything buffered.

        Raises:
            ChannelClosedError: If the stream closed with nothing buffered
        """
        ...

    async def write_line(self, line: str) -> None:
        """Send one line of input followed by a carriage return."""
        ...

    def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        ...


@runtime_checkable
class FileTransferClient(Protocol):
    """File-transfer channel.

    Path errors surface as OSError subclasses (FileNotFoundError,
    PermissionError, FileExistsError).
    """

    @property
    def is_live(self) -> bool:
        ...

    async def exists(self, path: str) -> bool:
        ...

    async def list_directory(self, path: str) -> list[RemoteFile]:
        """List entries of a directory, excluding "." and ".."."""
        ...

    async def create_directory(self, path: str) -> None:
        ...

    async def upload(
        self,
        source: LocalFile,
        remote_path: str,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Upload a local path or readable binary file.

        Args:
            source: Local path or binary file object
            remote_path: Destination path on the remote host
            overwrite: Replace an existing remote file
            progress: Called with the number of bytes sent so far

        Raises:
            FileExistsError: If the file exists and overwrite is False
        """
        ...

    async def download(self, remote_path: str, destination: LocalFile) -> None:
        """Download to a local path or writable binary file."""
        ...

    async def set_modified_time(self, remote_path: str, modified: datetime) -> None:
        ...

    async def remove(self, remote_path: str) -> None:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class TransportSession(Protocol):
    """One authenticated link that both channels ride on."""

    @property
    def is_live(self) -> bool:
        ...

    async def open_shell(self, geometry: TerminalGeometry) -> ShellStream:
        ...

    async def open_file_transfer(self) -> FileTransferClient:
        ...

    def close(self) -> None:
        ...


SessionLostCallback = Callable[[TransportSession, BaseException | None], None]


@runtime_checkable
class Transport(Protocol):
    """Factory for authenticated sessions."""

    async def open_session(
        self,
        target: ConnectionTarget,
        on_lost: SessionLostCallback,
    ) -> TransportSession:
        """Connect and authenticate to a target.

        Args:
            target: Host, port and identity to connect with
            on_lost: Called when the session drops after it was established

        Returns:
            Live session

        Raises:
            OSError: If the host is unreachable
            Exception: Transport-specific authentication or protocol errors
        """
        ...


__all__ = [
    "FileTransferClient",
    "LocalFile",
    "ProgressCallback",
    "SessionLostCallback",
    "ShellStream",
    "Transport",
    "TransportSession",
]
