"""Terminal geometry requested for shell channels."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TerminalGeometry:
    """PTY settings for an interactive shell."""

    term_type: str = "xterm"
    width: int = 80
    height: int = 24
    pixel_width: int = 800
    pixel_height: int = 600
    buffer_size: int = 1024  # read chunk size

    @property
    def term_size(self) -> tuple[int, int, int, int]:
        """Size tuple in the (cols, rows, pixwidth, pixheight) order asyncssh takes."""
        return (self.width, self.height, self.pixel_width, self.pixel_height)
