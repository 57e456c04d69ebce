"""Connection status model shared with status views.

The model is the single source of truth for per-channel state. Only the
owning Connection calls update(); views subscribe and render.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    """Logical channels carried by one connection."""

    SHELL = "shell"
    FILE_TRANSFER = "file_transfer"

    @property
    def label(self) -> str:
        return "SSH" if self is Channel.SHELL else "SFTP"


class ChannelState(str, Enum):
    """Lifecycle state of one channel."""

    NOT_CONNECTED = "not_connected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    LOST_CONNECTION = "lost_connection"
    RECONNECTING = "reconnecting"
    CONNECTION_FAILED = "connection_failed"
    DISCONNECTING = "disconnecting"


class ConnectionEvent(str, Enum):
    """Lifecycle notifications raised by a Connection."""

    SHELL_DISCONNECTED = "shell_disconnected"
    SHELL_RECONNECTED = "shell_reconnected"
    FILE_TRANSFER_DISCONNECTED = "file_transfer_disconnected"
    FILE_TRANSFER_RECONNECTED = "file_transfer_reconnected"
    RECONNECTION_EXHAUSTED = "reconnection_exhausted"

    @classmethod
    def disconnected(cls, channel: Channel) -> "ConnectionEvent":
        if channel is Channel.SHELL:
            return cls.SHELL_DISCONNECTED
        return cls.FILE_TRANSFER_DISCONNECTED

    @classmethod
    def reconnected(cls, channel: Channel) -> "ConnectionEvent":
        if channel is Channel.SHELL:
            return cls.SHELL_RECONNECTED
        return cls.FILE_TRANSFER_RECONNECTED


@dataclass
class ChannelStatus:
    """State and attempt counters for one channel."""

    state: ChannelState = ChannelState.NOT_CONNECTED
    attempt: int = 0
    max_attempts: int = 0  # 0 = retries disabled, -1 = unlimited

    @property
    def is_active(self) -> bool:
        """Whether the channel is mid-connect."""
        return self.state in (ChannelState.CONNECTING, ChannelState.RECONNECTING)


StatusCallback = Callable[["ConnectionStatusModel"], None]


@dataclass
class ConnectionStatusModel:
    """Per-channel status for one remote host."""

    host: str
    shell: ChannelStatus = field(default_factory=ChannelStatus)
    file_transfer: ChannelStatus = field(default_factory=ChannelStatus)
    _subscribers: list[StatusCallback] = field(
        default_factory=list, init=False, repr=False
    )

    def get(self, channel: Channel) -> ChannelStatus:
        """Return the status record for a channel."""
        return self.shell if channel is Channel.SHELL else self.file_transfer

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register a status-changed callback.

        Args:
            callback: Called with this model after every update

        Returns:
            Callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def update(
        self,
        channel: Channel,
        state: ChannelState,
        attempt: int = 0,
        max_attempts: int = 0,
    ) -> None:
        """Record a channel transition and notify subscribers."""
        status = self.get(channel)
        status.state = state
        status.attempt = attempt
        status.max_attempts = max_attempts
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s", format_status(channel, self.host, status))

        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:
                logger.exception("Status subscriber %r failed", callback)


def format_status(channel: Channel, host: str, status: ChannelStatus) -> str:
    """Render a one-line, human readable channel status.

    Examples:
        >>> format_status(Channel.SHELL, "10.0.0.5", ChannelStatus())
        'SSH   (10.0.0.5): Not Connected'
    """
    limit = f" of {status.max_attempts}" if status.max_attempts > 0 else ""
    if status.state is ChannelState.RECONNECTING:
        text = f"Connection Failed...Reconnecting ({status.attempt}{limit})"
    elif status.state is ChannelState.CONNECTION_FAILED:
        text = "Connection Failed"
        if status.max_attempts > 0:
            text += f" ({status.attempt}{limit})"
    else:
        text = {
            ChannelState.NOT_CONNECTED: "Not Connected",
            ChannelState.CONNECTING: "Connecting...",
            ChannelState.CONNECTED: "Connected",
            ChannelState.LOST_CONNECTION: "Lost Connection...Reconnecting",
            ChannelState.DISCONNECTING: "Disconnecting...",
        }[status.state]
    return f"{channel.label:<5} ({host}): {text}"
