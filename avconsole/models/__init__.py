"""Data models for avconsole."""

from avconsole.models.remote import RemoteFile, join_remote
from avconsole.models.status import (
    Channel,
    ChannelState,
    ChannelStatus,
    ConnectionEvent,
    ConnectionStatusModel,
    format_status,
)
from avconsole.models.target import (
    ConnectionTarget,
    Identity,
    PasswordAuth,
    PrivateKeyAuth,
    find_default_private_key,
)
from avconsole.models.terminal import TerminalGeometry

__all__ = [
    "Channel",
    "ChannelState",
    "ChannelStatus",
    "ConnectionEvent",
    "ConnectionStatusModel",
    "ConnectionTarget",
    "Identity",
    "PasswordAuth",
    "PrivateKeyAuth",
    "RemoteFile",
    "TerminalGeometry",
    "find_default_private_key",
    "format_status",
    "join_remote",
]
