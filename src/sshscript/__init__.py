"""Provision a remote host over SSH: retried commands and file uploads"""

from sshscript.core.context import Context
from sshscript.core.errors import (
    AuthenticationError,
    ConfigError,
    LocalFileError,
    OperationCancelled,
    ProvisionError,
    TransportError,
)
from sshscript.core.files import FileDescriptor
from sshscript.core.provisioner import Provisioner
from sshscript.core.retry import RetryPolicy
from sshscript.transport.base import ConnectionConfig, PasswordAuth, PrivateKeyAuth

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "ConfigError",
    "ConnectionConfig",
    "Context",
    "FileDescriptor",
    "LocalFileError",
    "OperationCancelled",
    "PasswordAuth",
    "PrivateKeyAuth",
    "Provisioner",
    "ProvisionError",
    "RetryPolicy",
    "TransportError",
]
