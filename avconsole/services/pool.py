"""Connection factory keyed by target.

Locking Strategy:
- `_meta_lock`: Protects the _connections dict; held only for lookup-or-insert
- Connections never connect on construction, so no I/O happens under the lock
- release_all() disposes connections outside the lock
"""

import asyncio
import logging

from avconsole.config import Settings
from avconsole.models import ConnectionTarget, Identity, TerminalGeometry
from avconsole.protocols import Transport
from avconsole.services.connection import Connection

logger = logging.getLogger(__name__)


class ConnectionFactory:
    """Pool holding exactly one Connection per (host, port, username).

    Host names compare case-insensitively.
    """

    def __init__(
        self,
        transport: Transport,
        max_reconnection_attempts: int = 0,
        dispose_timeout: float = 5.0,
        geometry: TerminalGeometry | None = None,
    ) -> None:
        """Initialize factory.

        Args:
            transport: Transport shared by every connection
            max_reconnection_attempts: Ceiling given to new connections
            dispose_timeout: Seconds each connection waits for its loop on dispose
            geometry: Shell PTY settings for new connections
        """
        self.transport = transport
        self.max_reconnection_attempts = max_reconnection_attempts
        self.dispose_timeout = dispose_timeout
        self.geometry = geometry or TerminalGeometry()
        self._connections: dict[str, Connection] = {}
        self._meta_lock = asyncio.Lock()

        logger.info(
            "ConnectionFactory initialized (max_reconnection_attempts=%d)",
            max_reconnection_attempts,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Transport) -> "ConnectionFactory":
        return cls(
            transport,
            max_reconnection_attempts=settings.max_reconnection_attempts,
            dispose_timeout=settings.dispose_timeout,
            geometry=settings.geometry,
        )

    @property
    def connection_count(self) -> int:
        """Number of pooled connections."""
        return len(self._connections)

    @property
    def active_keys(self) -> list[str]:
        """Keys of pooled connections that hold a live channel."""
        return [key for key, conn in self._connections.items() if conn.is_connected]

    async def get_connection(self, target: ConnectionTarget) -> Connection:
        """Get or create the connection for a target."""
        async with self._meta_lock:
            conn = self._connections.get(target.key)
            if conn is not None:
                logger.debug(
                    "Reusing connection to %s (pool_size=%d)",
                    target,
                    len(self._connections),
                )
                return conn

            conn = Connection(
                target,
                self.transport,
                max_reconnection_attempts=self.max_reconnection_attempts,
                dispose_timeout=self.dispose_timeout,
                geometry=self.geometry,
            )
            self._connections[target.key] = conn
            logger.info(
                "Creating connection to %s (pool_size=%d)",
                target,
                len(self._connections),
            )
            return conn

    async def get(self, host: str, port: int, identity: Identity) -> Connection:
        """Get or create the connection for a host, port and identity.

        Raises:
            InvalidTargetError: If host, port or identity is invalid
        """
        return await self.get_connection(ConnectionTarget(host, identity, port))

    async def release_all(self) -> None:
        """Dispose every pooled connection and clear the pool.

        Disposal errors are logged and do not stop the release.
        """
        async with self._meta_lock:
            connections = list(self._connections.values())
            self._connections.clear()

        if connections:
            logger.info("Releasing %d connection(s)", len(connections))

        for conn in connections:
            try:
                await conn.dispose()
            except Exception as e:
                logger.warning("Error disposing connection to %s: %s", conn.target, e)
