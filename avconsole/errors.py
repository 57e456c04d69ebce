"""Exception taxonomy for avconsole connections."""


class AvConsoleError(Exception):
    """Base class for avconsole errors."""


class InvalidTargetError(AvConsoleError, ValueError):
    """Connection target or identity is missing or malformed."""


class ConnectionFailedError(AvConsoleError):
    """Failed to establish a channel to the remote host."""

    def __init__(
        self,
        host: str,
        original_error: BaseException | None = None,
        message: str | None = None,
    ):
        """Initialize connection error.

        Args:
            host: Address of the remote host
            original_error: Transport exception that caused the failure
            message: Override for the default message
        """
        self.host = host
        self.original_error = original_error
        if message is None:
            message = f"Cannot connect to {host}"
            if original_error is not None:
                message = f"{message}: {original_error}"
        super().__init__(message)


class ReconnectionExhaustedError(ConnectionFailedError):
    """Automatic reconnection gave up after the configured attempts."""

    def __init__(self, host: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            host, message=f"Failed to connect to {host} after {attempts} attempts"
        )


class ConnectionDisposedError(AvConsoleError):
    """Operation attempted on a disposed connection."""

    def __init__(self, host: str):
        self.host = host
        super().__init__(f"Connection to {host} has been disposed")


class ChannelClosedError(AvConsoleError):
    """A shell or file-transfer channel closed under an operation."""
