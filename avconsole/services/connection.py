"""Resilient shell and file-transfer connection to one remote host.

Locking Strategy:
- Per-channel connect locks: serialize opening a channel, so concurrent
  ensure calls for the same channel perform one connect
- `_session_lock`: serializes opening the shared transport session
- `_lock`: protects handles, flags and the reconnection task; never held
  across transport I/O
- Lock acquisition order: channel lock, then session lock, then `_lock`

Notifications:
- Status updates and lifecycle events are collected while `_lock` is held
  and emitted after it is released, so subscribers may call back in
- While the reconnection loop owns the connection, only the loop narrates
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime
from functools import partial
from os import PathLike
from typing import Any

from avconsole.errors import (
    ConnectionDisposedError,
    ConnectionFailedError,
    ReconnectionExhaustedError,
)
from avconsole.models import (
    Channel,
    ChannelState,
    ConnectionEvent,
    ConnectionStatusModel,
    ConnectionTarget,
    RemoteFile,
    TerminalGeometry,
)
from avconsole.models.status import StatusCallback
from avconsole.protocols import (
    FileTransferClient,
    LocalFile,
    ProgressCallback,
    ShellStream,
    Transport,
    TransportSession,
)
from avconsole.services import executors
from avconsole.services.reconnect import (
    attempts_remaining,
    backoff_delay,
    retries_enabled,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[["Connection"], None]
_Notifications = list[Callable[[], None]]


class Connection:
    """Shell and file-transfer channels over one authenticated session.

    Channels connect lazily on first use, are reused while live and are
    reopened when found dead. With a nonzero reconnection ceiling a single
    background loop retries every channel in use, with capped backoff.

    Example:
        async with Connection(target, transport, max_reconnection_attempts=3) as conn:
            await conn.write_line("ver")
            print(await conn.read())
    """

    def __init__(
        self,
        target: ConnectionTarget,
        transport: Transport,
        max_reconnection_attempts: int = 0,
        dispose_timeout: float = 5.0,
        geometry: TerminalGeometry | None = None,
    ) -> None:
        """Initialize connection. No I/O happens until a channel is used.

        Args:
            target: Remote host and identity
            transport: Opens authenticated sessions
            max_reconnection_attempts: 0 disables retries, -1 retries forever
            dispose_timeout: Seconds dispose() waits for the reconnection loop
            geometry: PTY settings for the shell channel
        """
        self.target = target
        self.dispose_timeout = dispose_timeout
        self.geometry = geometry or TerminalGeometry()
        self.status = ConnectionStatusModel(host=target.host)

        self._transport = transport
        self._max_attempts = max_reconnection_attempts

        self._lock = asyncio.Lock()
        self._session_lock = asyncio.Lock()
        self._channel_locks = {channel: asyncio.Lock() for channel in Channel}

        self._session: TransportSession | None = None
        self._handles: dict[Channel, Any] = {channel: None for channel in Channel}
        self._needed = {channel: False for channel in Channel}
        self._was_connected = {channel: False for channel in Channel}
        self._lost = {channel: False for channel in Channel}

        self._reconnecting = False
        self._reconnect_task: asyncio.Task[bool] | None = None
        self._last_attempts = 0

        self._disposed = False
        self._disposed_event = asyncio.Event()
        self._background: set[asyncio.Task[Any]] = set()
        self._listeners: dict[ConnectionEvent, list[EventCallback]] = defaultdict(list)

    def __repr__(self) -> str:
        return f"Connection({self.target})"

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # Properties

    @property
    def max_reconnection_attempts(self) -> int:
        """Attempt ceiling; read once each time a reconnection loop starts."""
        return self._max_attempts

    @max_reconnection_attempts.setter
    def max_reconnection_attempts(self, value: int) -> None:
        self._max_attempts = value

    @property
    def is_shell_connected(self) -> bool:
        return self._live_handle(Channel.SHELL) is not None

    @property
    def is_file_transfer_connected(self) -> bool:
        return self._live_handle(Channel.FILE_TRANSFER) is not None

    @property
    def is_connected(self) -> bool:
        """True if either channel holds a live handle."""
        return self.is_shell_connected or self.is_file_transfer_connected

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnecting

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def last_reconnection_attempts(self) -> int:
        """Attempts made by the most recent reconnection loop."""
        return self._last_attempts

    @property
    def data_available(self) -> bool:
        """Whether the shell has unread output. Never connects."""
        shell = self._live_handle(Channel.SHELL)
        return shell is not None and shell.data_available

    # Notifications

    def on(self, event: ConnectionEvent, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to a lifecycle event.

        Args:
            event: Event to listen for
            callback: Called with this connection when the event fires

        Returns:
            Callable that removes the subscription
        """
        listeners = self._listeners[event]
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def on_status_changed(self, callback: StatusCallback) -> Callable[[], None]:
        """Subscribe to status changes of either channel."""
        return self.status.subscribe(callback)

    def _fire(self, event: ConnectionEvent) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(self)
            except Exception:
                logger.exception("Listener for %s failed", event.value)

    def _emit(self, batch: _Notifications) -> None:
        for notify in batch:
            notify()

    def _status(
        self,
        batch: _Notifications,
        channel: Channel,
        state: ChannelState,
        attempt: int = 0,
        max_attempts: int = 0,
    ) -> None:
        batch.append(partial(self.status.update, channel, state, attempt, max_attempts))

    def _event(self, batch: _Notifications, event: ConnectionEvent) -> None:
        batch.append(partial(self._fire, event))

    # Channel lifecycle

    def _check_disposed(self) -> None:
        if self._disposed:
            raise ConnectionDisposedError(self.target.host)

    def _live_handle(self, channel: Channel) -> Any:
        handle = self._handles[channel]
        if handle is not None and handle.is_live:
            return handle
        return None

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _close_quietly(resource: Any) -> None:
        try:
            resource.close()
        except Exception as e:
            logger.debug("Error closing %r: %s", resource, e)

    async def ensure_shell(self) -> ShellStream:
        """Return a live shell stream, connecting or reconnecting if needed.

        Raises:
            ConnectionFailedError: If the shell cannot be opened
            ReconnectionExhaustedError: If automatic reconnection gave up
            ConnectionDisposedError: If the connection has been disposed
        """
        return await self._ensure(Channel.SHELL)

    async def ensure_file_transfer(self) -> FileTransferClient:
        """Return a live file-transfer client, connecting or reconnecting if needed.

        Raises:
            ConnectionFailedError: If the channel cannot be opened
            ReconnectionExhaustedError: If automatic reconnection gave up
            ConnectionDisposedError: If the connection has been disposed
        """
        return await self._ensure(Channel.FILE_TRANSFER)

    async def connect_shell(self) -> bool:
        """Ensure the shell channel and report whether it is live."""
        try:
            await self.ensure_shell()
        except ConnectionFailedError as e:
            logger.warning("Shell connection to %s failed: %s", self.target, e)
        return self.is_shell_connected

    async def connect_file_transfer(self) -> bool:
        """Ensure the file-transfer channel and report whether it is live."""
        try:
            await self.ensure_file_transfer()
        except ConnectionFailedError as e:
            logger.warning("File transfer connection to %s failed: %s", self.target, e)
        return self.is_file_transfer_connected

    async def _ensure(self, channel: Channel) -> Any:
        async with self._lock:
            self._check_disposed()
            self._needed[channel] = True
            handle = self._live_handle(channel)
            if handle is not None:
                logger.debug("Reusing %s channel to %s", channel.label, self.target)
                return handle
            task = self._reconnect_task if self._reconnecting else None

        if task is not None:
            return await self._join_reconnection(channel, task)

        try:
            return await self._open_channel(channel)
        except ConnectionDisposedError:
            raise
        except Exception as e:
            if self._disposed:
                raise ConnectionDisposedError(self.target.host) from e
            if not retries_enabled(self._max_attempts):
                raise ConnectionFailedError(self.target.host, e) from e
            first_error = e

        logger.warning(
            "Connection to %s failed: %s, starting reconnection",
            self.target,
            first_error,
        )
        task = await self._start_reconnection()
        if task is None:
            raise ConnectionFailedError(self.target.host, first_error) from first_error
        return await self._join_reconnection(channel, task)

    async def _join_reconnection(self, channel: Channel, task: "asyncio.Task[bool]") -> Any:
        """Wait for the reconnection loop without letting cancellation reach it."""
        try:
            recovered = await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled() and self._disposed:
                raise ConnectionDisposedError(self.target.host) from None
            raise

        if self._disposed:
            raise ConnectionDisposedError(self.target.host)
        if not recovered:
            raise ReconnectionExhaustedError(self.target.host, self._last_attempts)

        async with self._lock:
            handle = self._live_handle(channel)
        if handle is not None:
            return handle

        # The loop recovered other channels, or this one died again since
        try:
            return await self._open_channel(channel)
        except ConnectionDisposedError:
            raise
        except Exception as e:
            raise ConnectionFailedError(self.target.host, e) from e

    async def _open_channel(self, channel: Channel) -> Any:
        """Open one channel on the shared session and store its handle."""
        async with self._channel_locks[channel]:
            batch: _Notifications = []
            async with self._lock:
                self._check_disposed()
                handle = self._live_handle(channel)
                if handle is not None:
                    return handle

                suppress = self._reconnecting
                dead = self._handles[channel]
                if dead is not None:
                    self._handles[channel] = None
                    self._lost[channel] = True
                    if not suppress:
                        state = (
                            ChannelState.LOST_CONNECTION
                            if self._was_connected[channel]
                            else ChannelState.CONNECTION_FAILED
                        )
                        self._status(batch, channel, state)
                        self._event(batch, ConnectionEvent.disconnected(channel))
                if not suppress:
                    self._status(batch, channel, ChannelState.CONNECTING)

            if dead is not None:
                logger.warning("%s channel to %s is dead, reopening", channel.label, self.target)
                self._close_quietly(dead)
            self._emit(batch)

            try:
                session = await self._ensure_session()
                if channel is Channel.SHELL:
                    handle = await session.open_shell(self.geometry)
                else:
                    handle = await session.open_file_transfer()
            except asyncio.CancelledError:
                if not suppress and not self._disposed:
                    self.status.update(channel, ChannelState.NOT_CONNECTED)
                raise
            except ConnectionDisposedError:
                raise
            except Exception as e:
                logger.warning(
                    "Failed to open %s channel to %s: %s", channel.label, self.target, e
                )
                if not suppress and not self._disposed:
                    self.status.update(channel, ChannelState.CONNECTION_FAILED)
                raise

            batch = []
            async with self._lock:
                if self._disposed:
                    self._close_quietly(handle)
                    raise ConnectionDisposedError(self.target.host)
                self._handles[channel] = handle
                self._was_connected[channel] = True
                if not self._reconnecting:
                    self._status(batch, channel, ChannelState.CONNECTED)
                    if self._lost[channel]:
                        self._lost[channel] = False
                        self._event(batch, ConnectionEvent.reconnected(channel))

            logger.info("%s channel to %s connected", channel.label, self.target)
            self._emit(batch)
            return handle

    async def _ensure_session(self) -> TransportSession:
        async with self._session_lock:
            async with self._lock:
                self._check_disposed()
                stale = self._session
                if stale is not None and stale.is_live:
                    return stale
                self._session = None

            if stale is not None:
                self._close_quietly(stale)

            session = await self._transport.open_session(self.target, self._on_session_lost)

            async with self._lock:
                if self._disposed:
                    self._close_quietly(session)
                    raise ConnectionDisposedError(self.target.host)
                self._session = session
            return session

    def _on_session_lost(self, session: TransportSession, exc: BaseException | None) -> None:
        """Transport callback; defers handling so no lock is entered here."""
        if self._disposed:
            return
        self._track(asyncio.create_task(self._handle_session_lost(session, exc)))

    async def _handle_session_lost(
        self, session: TransportSession, exc: BaseException | None
    ) -> None:
        batch: _Notifications = []
        released = []
        async with self._lock:
            if self._disposed or session is not self._session:
                return
            self._session = None
            for channel in Channel:
                handle = self._handles[channel]
                if handle is None:
                    continue
                self._handles[channel] = None
                self._lost[channel] = True
                released.append(handle)
                if not self._reconnecting:
                    self._status(batch, channel, ChannelState.LOST_CONNECTION)
                    self._event(batch, ConnectionEvent.disconnected(channel))

        logger.warning("Connection to %s lost: %s", self.target, exc or "closed")
        for handle in released:
            self._close_quietly(handle)
        self._close_quietly(session)
        self._emit(batch)

        await self._start_reconnection()

    # Reconnection engine

    async def _start_reconnection(self) -> "asyncio.Task[bool] | None":
        """Start the reconnection loop unless one is running or retries are off.

        Returns:
            The running loop's task, or None if no loop may run
        """
        async with self._lock:
            if self._reconnecting and self._reconnect_task is not None:
                return self._reconnect_task
            if self._disposed or not retries_enabled(self._max_attempts):
                return None
            self._reconnecting = True
            task = asyncio.create_task(self._reconnect_loop(self._max_attempts))
            self._reconnect_task = task
            return task

    async def _sleep_backoff(self, seconds: float) -> bool:
        """Wait before the next attempt. Returns True if disposed meanwhile."""
        try:
            await asyncio.wait_for(self._disposed_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _announce_attempt(
        self,
        batch: _Notifications,
        channels: list[Channel],
        attempt: int,
        max_attempts: int,
    ) -> None:
        """Add needed channels not yet in this attempt and queue their status."""
        for channel in Channel:
            if not self._needed[channel] or channel in channels:
                continue
            channels.append(channel)
            state = (
                ChannelState.RECONNECTING
                if self._was_connected[channel]
                else ChannelState.CONNECTING
            )
            self._status(batch, channel, state, attempt, max_attempts)

    async def _reconnect_loop(self, max_attempts: int) -> bool:
        """Retry every needed channel until all are live or attempts run out."""
        attempt = 0
        try:
            while True:
                attempt += 1
                channels: list[Channel] = []
                batch: _Notifications = []
                async with self._lock:
                    if self._disposed:
                        return False
                    self._announce_attempt(batch, channels, attempt, max_attempts)
                self._emit(batch)

                if attempt > 1:
                    if await self._sleep_backoff(backoff_delay(attempt)):
                        return False
                    # Channels first needed during the wait join this attempt
                    batch = []
                    async with self._lock:
                        if self._disposed:
                            return False
                        self._announce_attempt(batch, channels, attempt, max_attempts)
                    self._emit(batch)

                results = await asyncio.gather(
                    *(self._open_channel(channel) for channel in channels),
                    return_exceptions=True,
                )
                if self._disposed:
                    return False

                failed = [
                    (channel, result)
                    for channel, result in zip(channels, results)
                    if isinstance(result, BaseException)
                ]
                if not failed:
                    batch = []
                    async with self._lock:
                        self._reconnecting = False
                        self._last_attempts = attempt
                        for channel in channels:
                            self._lost[channel] = False
                            self._status(batch, channel, ChannelState.CONNECTED)
                            self._event(batch, ConnectionEvent.reconnected(channel))
                    logger.info("Reconnected to %s after %d attempt(s)", self.target, attempt)
                    self._emit(batch)
                    return True

                batch = []
                for channel, error in failed:
                    logger.warning(
                        "Reconnection attempt %d to %s failed (%s): %s",
                        attempt,
                        self.target,
                        channel.label,
                        error,
                    )
                    self._status(
                        batch, channel, ChannelState.CONNECTION_FAILED, attempt, max_attempts
                    )
                self._emit(batch)

                if not attempts_remaining(attempt, max_attempts):
                    break

            async with self._lock:
                self._reconnecting = False
                self._last_attempts = attempt
            logger.error("Failed to connect to %s after %d attempts", self.target.host, attempt)
            self._fire(ConnectionEvent.RECONNECTION_EXHAUSTED)
            return False
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnecting = False

    async def wait_for_reconnection(self) -> bool:
        """Wait for pending loss handling and any running reconnection loop.

        Returns:
            Whether a channel is live afterwards
        """
        pending = {task for task in self._background if not task.done()}
        if pending:
            await asyncio.wait(pending)
        task = self._reconnect_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        return self.is_connected

    # Teardown

    async def dispose(self) -> None:
        """Close both channels and the session and stop reconnecting.

        Safe to call more than once. Later operations raise
        ConnectionDisposedError.
        """
        async with self._lock:
            if self._disposed:
                return
            self._disposed = True
            held = [
                channel
                for channel in Channel
                if self.status.get(channel).state is not ChannelState.NOT_CONNECTED
            ]
            handles = [handle for handle in self._handles.values() if handle is not None]
            self._handles = {channel: None for channel in Channel}
            session, self._session = self._session, None
            task = self._reconnect_task

        self._disposed_event.set()
        logger.info("Disposing connection to %s", self.target)

        for channel in held:
            self.status.update(channel, ChannelState.DISCONNECTING)
        for handle in handles:
            self._close_quietly(handle)
        if session is not None:
            self._close_quietly(session)
        for channel in held:
            self.status.update(channel, ChannelState.NOT_CONNECTED)

        if task is not None and not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=self.dispose_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Reconnection loop for %s did not stop within %.1fs, cancelling",
                    self.target,
                    self.dispose_timeout,
                )
                task.cancel()

        for pending in list(self._background):
            pending.cancel()

    # Shell operations

    async def read(self) -> str:
        """Wait for shell output and return everything buffered."""
        shell = await self.ensure_shell()
        return await shell.read()

    async def write_line(self, line: str) -> None:
        shell = await self.ensure_shell()
        await shell.write_line(line)

    async def wait_for_pattern(
        self,
        success_patterns: Iterable[str] | None,
        failure_patterns: Iterable[str] | None = None,
        timeout: float = 15.0,
        echo: bool = True,
    ) -> executors.PatternMatch:
        """Read shell output until a success or failure pattern appears.

        Returns:
            PatternMatch, truthy only if a success pattern was seen first
        """
        shell = await self.ensure_shell()
        return await executors.wait_for_pattern(
            shell, success_patterns, failure_patterns, timeout=timeout, echo=echo
        )

    # File-transfer operations

    async def exists(self, path: str) -> bool:
        client = await self.ensure_file_transfer()
        return await client.exists(path)

    async def list_directory(self, path: str) -> list[RemoteFile]:
        client = await self.ensure_file_transfer()
        return await client.list_directory(path)

    async def create_directory(self, path: str) -> None:
        client = await self.ensure_file_transfer()
        await client.create_directory(path)

    async def upload(
        self,
        source: LocalFile,
        remote_path: str,
        overwrite: bool = True,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Upload a local path or binary file object.

        Raises:
            FileExistsError: If the remote file exists and overwrite is False
        """
        client = await self.ensure_file_transfer()
        await client.upload(source, remote_path, overwrite=overwrite, progress=progress)

    async def download(self, remote_path: str, destination: LocalFile) -> None:
        client = await self.ensure_file_transfer()
        await client.download(remote_path, destination)

    async def set_modified_time(self, remote_path: str, modified: datetime) -> None:
        client = await self.ensure_file_transfer()
        await client.set_modified_time(remote_path, modified)

    async def list_files_by_glob(self, pattern: str) -> list[RemoteFile]:
        client = await self.ensure_file_transfer()
        return await executors.list_files_by_glob(client, pattern)

    async def download_files_by_glob(
        self,
        pattern: str,
        local_dir: str | PathLike[str],
        preserve_structure: bool = True,
    ) -> int:
        """Download remote files matching a glob pattern.

        Returns:
            Number of files downloaded
        """
        client = await self.ensure_file_transfer()
        return await executors.download_files_by_glob(
            client, pattern, local_dir, preserve_structure=preserve_structure
        )

    async def delete_files_by_glob(self, pattern: str) -> int:
        """Delete remote files matching a glob pattern.

        Returns:
            Number of files deleted
        """
        client = await self.ensure_file_transfer()
        return await executors.delete_files_by_glob(client, pattern)


__all__ = ["Connection", "EventCallback"]
