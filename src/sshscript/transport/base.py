"""Connection description and the abstract remote transport"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Optional, Union


@dataclass(frozen=True)
class PasswordAuth:
    password: str

    def __repr__(self) -> str:
        return "PasswordAuth(password=***)"


@dataclass(frozen=True)
class PrivateKeyAuth:
    """Private key given as PEM/OpenSSH text, not as a path"""

    private_key: str
    passphrase: Optional[str] = None

    def __repr__(self) -> str:
        return "PrivateKeyAuth(private_key=***)"


Auth = Union[PasswordAuth, PrivateKeyAuth]


@dataclass(frozen=True)
class ConnectionConfig:
    """How to reach and authenticate to one remote host

    Args:
        host: Hostname or IP address
        user: Username for authentication
        auth: Password or private key credentials
        port: SSH port (default: 22)
        connect_timeout: TCP/handshake timeout in seconds
    """

    host: str
    user: str
    auth: Auth
    port: int = 22
    connect_timeout: float = 10.0

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    success: bool
    exit_status: Optional[int] = None


class BaseTransport(ABC):
    """Abstract remote execution and file-write primitives for one host"""

    @abstractmethod
    def run(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        """Execute a command on the remote host

        Args:
            command: Shell command line
            timeout: Seconds without remote activity before giving up (None = no limit)

        Returns:
            CommandResult of a command that exited successfully

        Raises:
            TransportError: On connection failure, timeout, or non-zero exit status
        """
        pass

    @abstractmethod
    def write_file(self, reader: BinaryIO, size: int, destination: str) -> None:
        """Write ``size`` bytes from ``reader`` to ``destination`` on the remote host

        Raises:
            TransportError: If the upload fails or is short
        """
        pass

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Read a remote file"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close transport connections"""
        pass
