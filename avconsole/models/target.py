"""Connection target and identity models."""

from dataclasses import dataclass, field
from pathlib import Path

from avconsole.errors import InvalidTargetError


@dataclass(frozen=True)
class PasswordAuth:
    """Username and password authentication."""

    username: str
    password: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.username:
            raise InvalidTargetError("username is required")
        if not self.password:
            raise InvalidTargetError("password is required")


@dataclass(frozen=True)
class PrivateKeyAuth:
    """Username and private key authentication."""

    username: str
    private_key_path: str
    passphrase: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.username:
            raise InvalidTargetError("username is required")
        if not self.private_key_path:
            raise InvalidTargetError("private_key_path is required")


Identity = PasswordAuth | PrivateKeyAuth


@dataclass(frozen=True)
class ConnectionTarget:
    """Remote host a Connection talks to."""

    host: str
    identity: Identity
    port: int = 22

    def __post_init__(self) -> None:
        if not self.host or not self.host.strip():
            raise InvalidTargetError("host is required")
        if not isinstance(self.identity, (PasswordAuth, PrivateKeyAuth)):
            raise InvalidTargetError(
                f"identity must be PasswordAuth or PrivateKeyAuth, "
                f"got {type(self.identity).__name__}"
            )
        if not 0 < self.port < 65536:
            raise InvalidTargetError(f"port must be in 1..65535, got {self.port}")

    @property
    def username(self) -> str:
        return self.identity.username

    @property
    def key(self) -> str:
        """Case-insensitive pool key for this target."""
        return f"{self.host}:{self.port}:{self.username}".lower()

    def __str__(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


def find_default_private_key(home: Path | None = None) -> Path:
    """Locate the user's default SSH private key.

    Args:
        home: Home directory to search (defaults to the current user's)

    Returns:
        Path to ~/.ssh/id_rsa, or ~/.ssh/id_ed25519 if there is no RSA key

    Raises:
        FileNotFoundError: If neither key exists
    """
    ssh_dir = (home or Path.home()) / ".ssh"
    for name in ("id_rsa", "id_ed25519"):
        candidate = ssh_dir / name
        if candidate.is_file():
            return candidate
    raise FileNotFoundError(
        "No SSH private key found. Expected key at ~/.ssh/id_rsa or ~/.ssh/id_ed25519"
    )
