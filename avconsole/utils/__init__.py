"""Utilities for avconsole."""

from avconsole.utils.console import ColorfulFormatter, configure_logging
from avconsole.utils.glob import base_path, filter_matches, glob_to_regex, is_match

__all__ = [
    "base_path",
    "ColorfulFormatter",
    "configure_logging",
    "filter_matches",
    "glob_to_regex",
    "is_match",
]
