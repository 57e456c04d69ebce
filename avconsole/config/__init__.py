"""Configuration module for avconsole.

- Settings: Environment variable configuration
"""

from avconsole.config.settings import Settings

__all__ = ["Settings"]
