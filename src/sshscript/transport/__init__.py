"""Remote transports"""

from .base import BaseTransport, CommandResult, ConnectionConfig
from .ssh import SSHTransport

__all__ = ["BaseTransport", "CommandResult", "ConnectionConfig", "SSHTransport"]
