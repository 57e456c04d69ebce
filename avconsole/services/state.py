"""Process-wide state for avconsole."""

from avconsole.config import Settings
from avconsole.services.pool import ConnectionFactory
from avconsole.services.transport import AsyncSSHTransport

# Global state (initialized on first access)
_settings: Settings | None = None
_factory: ConnectionFactory | None = None


def get_settings() -> Settings:
    """Get or create settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_factory() -> ConnectionFactory:
    """Get or create the process-wide connection factory."""
    global _factory
    if _factory is None:
        settings = get_settings()
        _factory = ConnectionFactory.from_settings(
            settings, AsyncSSHTransport.from_settings(settings)
        )
    return _factory


def reset_state() -> None:
    """Reset global state for testing.

    This function clears the singleton instances, allowing tests
    to start with fresh state. Should only be used in test fixtures.
    """
    global _settings, _factory
    _settings = None
    _factory = None


def set_settings(settings: Settings) -> None:
    """Set the global settings instance.

    Args:
        settings: Settings instance to use globally.
    """
    global _settings
    _settings = settings


def set_factory(factory: ConnectionFactory) -> None:
    """Set the global factory instance.

    Allows tests to inject a factory over a fake transport.

    Args:
        factory: ConnectionFactory instance to use globally.
    """
    global _factory
    _factory = factory
