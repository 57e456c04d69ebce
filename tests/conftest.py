"""In-memory transport fakes shared by the connection tests."""

import asyncio
import logging
import os
from datetime import datetime

import pytest

from avconsole.errors import ChannelClosedError
from avconsole.models import (
    ConnectionTarget,
    PasswordAuth,
    RemoteFile,
    TerminalGeometry,
    join_remote,
)
from avconsole.services.connection import Connection


class FakeFileSystem:
    """Remote tree keyed by relative posix paths; "." is the root."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.mtimes: dict[str, datetime] = {}
        self.dirs: set[str] = {"."}

    def add_file(self, path: str, data: bytes = b"", modified: datetime | None = None) -> None:
        self.files[path] = data
        if modified is not None:
            self.mtimes[path] = modified
        parent = path.rpartition("/")[0]
        while parent:
            self.dirs.add(parent)
            parent = parent.rpartition("/")[0]

    def children(self, path: str) -> list[RemoteFile]:
        if path not in self.dirs:
            raise FileNotFoundError(2, "No such file", path)
        prefix = "" if path == "." else path.rstrip("/") + "/"

        entries: dict[str, RemoteFile] = {}
        for name in sorted(self.dirs | set(self.files)):
            if name == "." or not name.startswith(prefix):
                continue
            rest = name[len(prefix) :]
            if not rest or "/" in rest:
                continue
            entries[rest] = RemoteFile(
                name=rest,
                full_name=join_remote(path, rest),
                is_directory=name in self.dirs,
                size=len(self.files.get(name, b"")),
                modified=self.mtimes.get(name),
            )
        return list(entries.values())


class FakeShellStream:
    """Shell whose output is fed by the test."""

    def __init__(self, session: "FakeSession", geometry: TerminalGeometry) -> None:
        self.session = session
        self.geometry = geometry
        self.buffer: list[str] = []
        self.written: list[str] = []
        self.replies: dict[str, str] = session.transport.shell_replies
        self.closed = False

    @property
    def is_live(self) -> bool:
        return not self.closed and self.session.is_live

    @property
    def data_available(self) -> bool:
        return bool(self.buffer)

    def feed(self, text: str) -> None:
        self.buffer.append(text)

    async def read(self) -> str:
        if not self.buffer and not self.is_live:
            raise ChannelClosedError("Shell stream closed")
        data = "".join(self.buffer)
        self.buffer.clear()
        return data

    async def write_line(self, line: str) -> None:
        if not self.is_live:
            raise ChannelClosedError("Shell stream closed")
        self.written.append(line)
        if line in self.replies:
            self.feed(self.replies[line])

    def close(self) -> None:
        self.closed = True


class FakeFileTransfer:
    """SFTP client over a FakeFileSystem."""

    def __init__(self, session: "FakeSession", fs: FakeFileSystem) -> None:
        self.session = session
        self.fs = fs
        self.closed = False

    @property
    def is_live(self) -> bool:
        return not self.closed and self.session.is_live

    async def exists(self, path: str) -> bool:
        return path in self.fs.files or path in self.fs.dirs

    async def list_directory(self, path: str) -> list[RemoteFile]:
        return self.fs.children(path)

    async def create_directory(self, path: str) -> None:
        if path in self.fs.dirs:
            raise FileExistsError(17, "Directory exists", path)
        self.fs.dirs.add(path)

    async def upload(self, source, remote_path, overwrite=True, progress=None) -> None:
        if not overwrite and remote_path in self.fs.files:
            raise FileExistsError(17, "Remote file exists", remote_path)
        if isinstance(source, (str, os.PathLike)):
            with open(source, "rb") as f:
                data = f.read()
        else:
            data = source.read()
        self.fs.add_file(remote_path, data)
        if progress is not None:
            progress(len(data))

    async def download(self, remote_path, destination) -> None:
        if remote_path not in self.fs.files:
            raise FileNotFoundError(2, "No such file", remote_path)
        data = self.fs.files[remote_path]
        if isinstance(destination, (str, os.PathLike)):
            with open(destination, "wb") as f:
                f.write(data)
        else:
            destination.write(data)

    async def set_modified_time(self, remote_path: str, modified: datetime) -> None:
        if remote_path not in self.fs.files:
            raise FileNotFoundError(2, "No such file", remote_path)
        self.fs.mtimes[remote_path] = modified

    async def remove(self, remote_path: str) -> None:
        if remote_path not in self.fs.files:
            raise FileNotFoundError(2, "No such file", remote_path)
        del self.fs.files[remote_path]
        self.fs.mtimes.pop(remote_path, None)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Authenticated session; drop() simulates the transport losing it."""

    def __init__(self, transport: "FakeTransport", target: ConnectionTarget, on_lost) -> None:
        self.transport = transport
        self.target = target
        self.on_lost = on_lost
        self.live = True
        self.closed = False
        self.shells: list[FakeShellStream] = []
        self.file_transfers: list[FakeFileTransfer] = []

    @property
    def is_live(self) -> bool:
        return self.live and not self.closed

    async def open_shell(self, geometry: TerminalGeometry) -> FakeShellStream:
        await asyncio.sleep(0)
        shell = FakeShellStream(self, geometry)
        self.shells.append(shell)
        return shell

    async def open_file_transfer(self) -> FakeFileTransfer:
        await asyncio.sleep(0)
        client = FakeFileTransfer(self, self.transport.fs)
        self.file_transfers.append(client)
        return client

    def drop(self, exc: BaseException | None = None) -> None:
        self.live = False
        self.on_lost(self, exc or ConnectionResetError("Connection reset by peer"))

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Counts connect attempts; can refuse some or all of them."""

    def __init__(self) -> None:
        self.open_attempts = 0
        self.failures_remaining = 0
        self.unreachable = False
        self.sessions: list[FakeSession] = []
        self.fs = FakeFileSystem()
        self.shell_replies: dict[str, str] = {}

    @property
    def session(self) -> FakeSession:
        """Most recently opened session."""
        return self.sessions[-1]

    async def open_session(self, target: ConnectionTarget, on_lost) -> FakeSession:
        self.open_attempts += 1
        await asyncio.sleep(0)
        if self.unreachable:
            raise OSError(113, "No route to host")
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise OSError(111, "Connection refused")
        session = FakeSession(self, target, on_lost)
        self.sessions.append(session)
        return session


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def target() -> ConnectionTarget:
    return ConnectionTarget("10.0.0.5", PasswordAuth("admin", "secret"))


@pytest.fixture
def make_connection(transport: FakeTransport, target: ConnectionTarget):
    """Build connections whose backoff waits are recorded instead of slept."""

    def make(max_attempts: int = 0, **kwargs) -> Connection:
        conn = Connection(
            target, transport, max_reconnection_attempts=max_attempts, **kwargs
        )
        conn.backoff_delays = []

        async def record_backoff(seconds: float) -> bool:
            conn.backoff_delays.append(seconds)
            await asyncio.sleep(0)
            return conn.is_disposed

        conn._sleep_backoff = record_backoff
        return conn

    return make


@pytest.fixture
def status_log():
    """Record every status update a connection makes, in order."""

    def attach(conn: Connection) -> list[tuple]:
        log: list[tuple] = []
        update = conn.status.update

        def recording_update(channel, state, attempt=0, max_attempts=0) -> None:
            log.append((channel, state, attempt))
            update(channel, state, attempt, max_attempts)

        conn.status.update = recording_update
        return log

    return attach


@pytest.fixture
def file_transfer(transport: FakeTransport, target: ConnectionTarget) -> FakeFileTransfer:
    """Live file-transfer client over the transport's in-memory tree."""
    session = FakeSession(transport, target, on_lost=lambda s, e: None)
    transport.sessions.append(session)
    return FakeFileTransfer(session, transport.fs)


@pytest.fixture
def package_logger():
    """The "avconsole" logger, restored after the test reconfigures it."""
    logger = logging.getLogger("avconsole")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    noisy_level = logging.getLogger("asyncssh").level
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]
    logging.getLogger("asyncssh").setLevel(noisy_level)
