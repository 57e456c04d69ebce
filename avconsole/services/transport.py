"""asyncssh-backed transport for shell and file-transfer channels.

One AsyncSSHSession wraps one authenticated SSHClientConnection. The shell
and the SFTP client are opened on top of it, so losing the session loses
both channels. Loss is reported through the on_lost callback that the
connection registered when it opened the session.
"""

import asyncio
import logging
import stat
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from os import PathLike
from typing import Any

import asyncssh

from avconsole.errors import ChannelClosedError
from avconsole.models import (
    ConnectionTarget,
    PasswordAuth,
    RemoteFile,
    TerminalGeometry,
    join_remote,
)
from avconsole.protocols import LocalFile, ProgressCallback, SessionLostCallback

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024


class _SessionClient(asyncssh.SSHClient):
    """Client callbacks for one connection; forwards loss to its session."""

    def __init__(self) -> None:
        self._session: "AsyncSSHSession | None" = None
        self._on_lost: SessionLostCallback | None = None

    def bind(self, session: "AsyncSSHSession", on_lost: SessionLostCallback) -> None:
        self._session = session
        self._on_lost = on_lost

    def connection_lost(self, exc: Exception | None) -> None:
        session = self._session
        if session is None or self._on_lost is None:
            # Lost during the handshake; connect() raises instead
            return
        if session.closed:
            return
        logger.warning("SSH session to %s lost: %s", session.target, exc or "closed")
        session.closed = True
        self._on_lost(session, exc)


class AsyncSSHShellStream:
    """Interactive PTY shell over an asyncssh process.

    A background task pumps stdout into a buffer so that readers never
    block the transport.
    """

    def __init__(
        self, process: "asyncssh.SSHClientProcess[str]", buffer_size: int = 1024
    ) -> None:
        self._process = process
        self._buffer_size = buffer_size
        self._chunks: list[str] = []
        self._ready = asyncio.Event()
        self._eof = False
        self._pump = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            while True:
                chunk = await self._process.stdout.read(self._buffer_size)
                if not chunk:
                    break
                self._chunks.append(chunk)
                self._ready.set()
        except (asyncssh.Error, OSError) as e:
            logger.debug("Shell reader stopped: %s", e)
        finally:
            self._eof = True
            self._ready.set()

    @property
    def is_live(self) -> bool:
        return not self._eof and not self._process.is_closing()

    @property
    def data_available(self) -> bool:
        return bool(self._chunks)

    async def read(self) -> str:
        while not self._chunks:
            if self._eof:
                raise ChannelClosedError("Shell stream closed")
            self._ready.clear()
            await self._ready.wait()

        data = "".join(self._chunks)
        self._chunks.clear()
        return data

    async def write_line(self, line: str) -> None:
        if not self.is_live:
            raise ChannelClosedError("Shell stream closed")
        try:
            self._process.stdin.write(line + "\r")
            await self._process.stdin.drain()
        except (asyncssh.Error, OSError) as e:
            raise ChannelClosedError(f"Shell write failed: {e}") from e

    def close(self) -> None:
        self._process.close()
        if not self._pump.done():
            self._pump.cancel()


@contextmanager
def _map_sftp_errors(client: "AsyncSSHFileTransfer", path: str) -> Iterator[None]:
    """Translate asyncssh SFTP errors into OSError subclasses.

    A disconnect marks the client closed so the owning connection sees it
    as dead on the next liveness check.
    """
    try:
        yield
    except asyncssh.SFTPNoSuchFile as e:
        raise FileNotFoundError(2, e.reason, path) from e
    except asyncssh.SFTPPermissionDenied as e:
        raise PermissionError(13, e.reason, path) from e
    except asyncssh.SFTPError as e:
        raise OSError(f"SFTP error on {path}: {e.reason}") from e
    except (asyncssh.DisconnectError, asyncssh.ConnectionLost, ConnectionError) as e:
        client.closed = True
        raise ChannelClosedError(f"SFTP channel closed: {e}") from e


class AsyncSSHFileTransfer:
    """SFTP file-transfer channel."""

    def __init__(
        self, sftp: asyncssh.SFTPClient, conn: asyncssh.SSHClientConnection
    ) -> None:
        self._sftp = sftp
        self._conn = conn
        self.closed = False

    @property
    def is_live(self) -> bool:
        return not self.closed and not self._conn.is_closed()

    async def exists(self, path: str) -> bool:
        with _map_sftp_errors(self, path):
            return await self._sftp.exists(path)

    async def list_directory(self, path: str) -> list[RemoteFile]:
        with _map_sftp_errors(self, path):
            names = await self._sftp.readdir(path)

        entries = []
        for name in names:
            if name.filename in (".", ".."):
                continue
            attrs = name.attrs
            modified = None
            if attrs.mtime is not None:
                modified = datetime.fromtimestamp(attrs.mtime)
            entries.append(
                RemoteFile(
                    name=name.filename,
                    full_name=join_remote(path, name.filename),
                    is_directory=attrs.permissions is not None
                    and stat.S_ISDIR(attrs.permissions),
                    size=attrs.size or 0,
                    modified=modified,
                )
            )
        return entries

    async def create_directory(self, path: str) -> None:
        with _map_sftp_errors(self, path):
            await self._sftp.mkdir(path)

    async def upload(
        self,
        source: LocalFile,
        remote_path: str,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> None:
        with _map_sftp_errors(self, remote_path):
            if not overwrite and await self._sftp.exists(remote_path):
                raise FileExistsError(17, "Remote file exists", remote_path)

            if isinstance(source, (str, PathLike)):
                handler = None
                if progress is not None:

                    def handler(_src: Any, _dst: Any, sent: int, _total: int) -> None:
                        progress(sent)

                await self._sftp.put(source, remote_path, progress_handler=handler)
                return

            sent = 0
            async with self._sftp.open(remote_path, "wb") as remote:
                while chunk := source.read(COPY_CHUNK_SIZE):
                    await remote.write(chunk)
                    sent += len(chunk)
                    if progress is not None:
                        progress(sent)

    async def download(self, remote_path: str, destination: LocalFile) -> None:
        with _map_sftp_errors(self, remote_path):
            if isinstance(destination, (str, PathLike)):
                await self._sftp.get(remote_path, destination)
                return

            async with self._sftp.open(remote_path, "rb") as remote:
                while chunk := await remote.read(COPY_CHUNK_SIZE):
                    destination.write(chunk)

    async def set_modified_time(self, remote_path: str, modified: datetime) -> None:
        timestamp = modified.timestamp()
        with _map_sftp_errors(self, remote_path):
            await self._sftp.utime(remote_path, (timestamp, timestamp))

    async def remove(self, remote_path: str) -> None:
        with _map_sftp_errors(self, remote_path):
            await self._sftp.remove(remote_path)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._sftp.exit()


class AsyncSSHSession:
    """One authenticated SSH connection shared by both channels."""

    def __init__(
        self, conn: asyncssh.SSHClientConnection, target: ConnectionTarget
    ) -> None:
        self._conn = conn
        self.target = target
        self.closed = False

    @property
    def is_live(self) -> bool:
        return not self.closed and not self._conn.is_closed()

    async def open_shell(self, geometry: TerminalGeometry) -> AsyncSSHShellStream:
        process = await self._conn.create_process(
            term_type=geometry.term_type,
            term_size=geometry.term_size,
        )
        return AsyncSSHShellStream(process, buffer_size=geometry.buffer_size)

    async def open_file_transfer(self) -> AsyncSSHFileTransfer:
        sftp = await self._conn.start_sftp_client()
        return AsyncSSHFileTransfer(sftp, self._conn)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            logger.info("Closing SSH session to %s", self.target)
            self._conn.close()


class AsyncSSHTransport:
    """Opens authenticated asyncssh sessions."""

    def __init__(
        self,
        known_hosts: str | None = None,
        keepalive_interval: int = 3,
        keepalive_count_max: int = 3,
        connect_timeout: int = 10,
    ) -> None:
        """Initialize transport.

        Args:
            known_hosts: Path to known_hosts file, or None to disable verification
            keepalive_interval: Seconds between keepalive probes
            keepalive_count_max: Unanswered probes before the session is lost
            connect_timeout: Seconds allowed for connect and authentication
        """
        self.known_hosts = known_hosts
        self.keepalive_interval = keepalive_interval
        self.keepalive_count_max = keepalive_count_max
        self.connect_timeout = connect_timeout

        if known_hosts is None:
            logger.warning(
                "SSH host key verification DISABLED - vulnerable to MITM attacks. "
                "Set AVCONSOLE_KNOWN_HOSTS to a valid known_hosts file path."
            )

    @classmethod
    def from_settings(cls, settings: Any) -> "AsyncSSHTransport":
        return cls(
            known_hosts=settings.known_hosts,
            keepalive_interval=settings.keepalive_interval,
            keepalive_count_max=settings.keepalive_count_max,
            connect_timeout=settings.connect_timeout,
        )

    def _auth_options(self, target: ConnectionTarget) -> dict[str, Any]:
        identity = target.identity
        if isinstance(identity, PasswordAuth):
            return {"password": identity.password, "client_keys": None}
        options: dict[str, Any] = {"client_keys": [identity.private_key_path]}
        if identity.passphrase:
            options["passphrase"] = identity.passphrase
        return options

    async def open_session(
        self, target: ConnectionTarget, on_lost: SessionLostCallback
    ) -> AsyncSSHSession:
        logger.info("Opening SSH connection to %s", target)
        client = _SessionClient()
        conn = await asyncssh.connect(
            target.host,
            port=target.port,
            username=target.username,
            known_hosts=self.known_hosts,
            keepalive_interval=self.keepalive_interval,
            keepalive_count_max=self.keepalive_count_max,
            connect_timeout=self.connect_timeout,
            client_factory=lambda: client,
            **self._auth_options(target),
        )
        session = AsyncSSHSession(conn, target)
        client.bind(session, on_lost)
        return session
