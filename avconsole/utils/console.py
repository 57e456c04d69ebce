"""Colorful console logging formatter and logging bootstrap."""

import logging
import re
import sys
from datetime import datetime

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    # Foreground colors
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    # Bright foreground colors
    "bright_black": "\033[90m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
    "bright_yellow": "\033[93m",
    "bright_blue": "\033[94m",
    "bright_magenta": "\033[95m",
    "bright_cyan": "\033[96m",
    # Background colors
    "bg_red": "\033[41m",
}

# Log level colors
LEVEL_COLORS = {
    "DEBUG": COLORS["bright_black"],
    "INFO": COLORS["bright_green"],
    "WARNING": COLORS["bright_yellow"],
    "ERROR": COLORS["bright_red"],
    "CRITICAL": COLORS["bg_red"] + COLORS["white"] + COLORS["bold"],
}

# Component colors for logger names
COMPONENT_COLORS = {
    "avconsole.services.connection": COLORS["bright_cyan"],
    "avconsole.services.pool": COLORS["bright_magenta"],
    "avconsole.services.transport": COLORS["bright_blue"],
    "avconsole.services.executors": COLORS["cyan"],
    "avconsole.models": COLORS["yellow"],
    "avconsole.config": COLORS["green"],
    "default": COLORS["white"],
}

# Loggers that only add noise at INFO
NOISY_LOGGERS = ("asyncssh", "asyncssh.sftp")

_PREFIX = "avconsole."
_SSH_TARGET = re.compile(r"(\w+@[\w\.\-]+:\d+)")
_ATTEMPTS = re.compile(r"(\(\d+(?: of \d+)?\)|after \d+ attempts)")
_DURATION = re.compile(r"(\d+\.?\d*m?s)\b")


class ColorfulFormatter(logging.Formatter):
    """Colorful log formatter with local timestamps and component highlighting."""

    def __init__(self, use_colors: bool = True) -> None:
        """Initialize the formatter.

        Args:
            use_colors: Whether to use ANSI colors.
        """
        super().__init__()
        self.use_colors = use_colors

    def _colorize(self, text: str, color: str) -> str:
        """Apply color to text if colors are enabled."""
        if not self.use_colors:
            return text
        return f"{color}{text}{COLORS['reset']}"

    def _get_component_color(self, name: str) -> str:
        """Get color for a logger name/component."""
        for prefix, color in COMPONENT_COLORS.items():
            if prefix != "default" and name.startswith(prefix):
                return color
        return COMPONENT_COLORS["default"]

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created)
        time_str = dt.strftime("%H:%M:%S")
        date_str = dt.strftime("%m/%d")
        ms_str = f".{int(record.msecs):03d}"
        return f"{time_str}{ms_str} {date_str}"

    def _format_level(self, record: logging.LogRecord) -> str:
        level = record.levelname
        color = LEVEL_COLORS.get(level, COLORS["white"])
        return self._colorize(f"{level:<8}", color)

    def _format_component(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith(_PREFIX):
            name = name[len(_PREFIX) :]
        color = self._get_component_color(record.name)
        return self._colorize(f"{name:<20}", color)

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with colors and a local timestamp."""
        timestamp = self._colorize(self._format_timestamp(record), COLORS["dim"])
        level = self._format_level(record)
        component = self._format_component(record)
        sep = self._colorize("|", COLORS["dim"])

        message = self._highlight_message(record.getMessage())
        line = f"{timestamp} {sep} {level} {sep} {component} {sep} {message}"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    def _highlight_message(self, message: str) -> str:
        """Highlight connection targets, attempt counters and durations."""
        if not self.use_colors:
            return message

        if "@" in message:
            message = _SSH_TARGET.sub(
                f"{COLORS['bright_magenta']}\\1{COLORS['reset']}", message
            )

        if "(" in message or "attempts" in message:
            message = _ATTEMPTS.sub(
                f"{COLORS['bright_yellow']}\\1{COLORS['reset']}", message
            )

        if "s" in message:
            message = _DURATION.sub(f"{COLORS['cyan']}\\1{COLORS['reset']}", message)

        return message


def configure_logging(level: str = "INFO", use_colors: bool = True) -> None:
    """Configure colorful logging for the avconsole package.

    Colors are disabled when stderr is not a TTY. Calling this more than
    once only updates the level.

    Args:
        level: Level name for the avconsole logger
        use_colors: Whether to use ANSI colors
    """
    if not sys.stderr.isatty():
        use_colors = False

    package_logger = logging.getLogger("avconsole")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Only add handler if not already configured
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColorfulFormatter(use_colors=use_colors))
        package_logger.addHandler(handler)
        package_logger.propagate = False

    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)
