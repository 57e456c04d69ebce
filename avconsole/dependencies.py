"""Dependency injection container for avconsole.

Alternative to the process-wide state in avconsole.services.state.
"""

from dataclasses import dataclass

from avconsole.config import Settings
from avconsole.services.pool import ConnectionFactory
from avconsole.services.transport import AsyncSSHTransport
from avconsole.utils.console import configure_logging


@dataclass
class Dependencies:
    """Container for avconsole dependencies.

    Holds settings and the connection factory.

    Example:
        deps = Dependencies.create()
        conn = await deps.factory.get("10.0.0.5", 22, PasswordAuth("admin", "pw"))
        ...
        await deps.cleanup()
    """

    settings: Settings
    factory: ConnectionFactory

    @classmethod
    def create(cls) -> "Dependencies":
        """Create dependencies from the environment and configure logging.

        Returns:
            Initialized Dependencies instance
        """
        settings = Settings.from_env()
        configure_logging(settings.log_level, settings.log_colors)
        return cls.from_settings(settings)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Dependencies":
        """Create dependencies with custom settings.

        Args:
            settings: Custom Settings instance

        Returns:
            Dependencies with a factory over the asyncssh transport
        """
        transport = AsyncSSHTransport.from_settings(settings)
        factory = ConnectionFactory.from_settings(settings, transport)
        return cls(settings=settings, factory=factory)

    async def cleanup(self) -> None:
        """Clean up resources (dispose all connections)."""
        await self.factory.release_all()
