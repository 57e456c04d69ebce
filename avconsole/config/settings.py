"""Application settings from environment variables.

Centralized environment variable parsing and validation.
"""

import logging
import os
from dataclasses import dataclass, field

from avconsole.models import TerminalGeometry

logger = logging.getLogger(__name__)

ENV_PREFIX = "AVCONSOLE_"


@dataclass
class Settings:
    """Application settings from environment.

    Handles parsing, validation, and defaults for all env vars.
    """

    # Reconnection (0 = disabled, -1 = unlimited)
    max_reconnection_attempts: int = field(default=0)
    dispose_timeout: float = field(default=5.0)

    # Transport
    keepalive_interval: int = field(default=3)
    keepalive_count_max: int = field(default=3)
    connect_timeout: int = field(default=10)
    known_hosts: str | None = field(default=None)

    # Shell
    geometry: TerminalGeometry = field(default_factory=TerminalGeometry)

    # Logging
    log_level: str = field(default="INFO")
    log_colors: bool = field(default=True)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from AVCONSOLE_* environment variables.

        Returns:
            Settings instance with values from environment
        """
        return cls(
            max_reconnection_attempts=cls._get_int("MAX_RECONNECT_ATTEMPTS", 0),
            dispose_timeout=float(cls._get_int("DISPOSE_TIMEOUT", 5)),
            keepalive_interval=cls._get_int("KEEPALIVE_INTERVAL", 3),
            keepalive_count_max=cls._get_int("KEEPALIVE_COUNT_MAX", 3),
            connect_timeout=cls._get_int("CONNECT_TIMEOUT", 10),
            known_hosts=cls._get_known_hosts(),
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper(),
            log_colors=cls._get_bool("LOG_COLORS", True),
        )

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer from environment.

        Args:
            key: Variable name without the AVCONSOLE_ prefix
            default: Default value if not set or invalid

        Returns:
            Integer value from environment or default
        """
        name = f"{ENV_PREFIX}{key}"
        value = os.getenv(name)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid int for %s: %s, using default %d", name, value, default)
            return default

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        value = os.getenv(f"{ENV_PREFIX}{key}")
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _get_known_hosts() -> str | None:
        """Get known_hosts path; unset or "none" disables verification."""
        value = os.getenv(f"{ENV_PREFIX}KNOWN_HOSTS", "").strip()
        if not value or value.lower() == "none":
            return None
        return os.path.expanduser(value)
