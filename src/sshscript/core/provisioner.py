"""Provisioner: one host, one retry policy, one session"""

import logging
from typing import Optional, Sequence

from sshscript.core.context import Context
from sshscript.core.diagnostics import DiagnosticsSink, NullSink
from sshscript.core.executor import CommandExecutor
from sshscript.core.files import FileDescriptor, FileTransfer
from sshscript.core.retry import RetryPolicy
from sshscript.transport.base import BaseTransport, ConnectionConfig
from sshscript.transport.ssh import SSHTransport

logger = logging.getLogger(__name__)


class Provisioner:
    """Runs commands and copies files on one remote host"""

    def __init__(self, connection: ConnectionConfig, policy: RetryPolicy,
                 sink: Optional[DiagnosticsSink] = None,
                 transport: Optional[BaseTransport] = None,
                 skip_host_verification: bool = False):
        """Initialize provisioner

        Args:
            connection: Host and credentials; the SSH connection opens on first use
            policy: Command timeout and retry delay for every operation
            sink: Diagnostics destination (default: discard)
            transport: Transport override, mainly for tests
            skip_host_verification: Passed to the default SSH transport
        """
        self.connection = connection
        self.policy = policy
        self.sink = sink or NullSink()
        self.transport = transport or SSHTransport(connection, skip_host_verification=skip_host_verification)
        self.executor = CommandExecutor(self.transport, policy, self.sink)
        self.file_transfer = FileTransfer(self.transport, policy, self.sink)

    def execute(self, commands: Sequence[str], ctx: Optional[Context] = None) -> str:
        """Run commands in order and return the last command's stdout"""
        ctx = ctx or Context.background()
        logger.info(f"Executing {len(commands)} command(s) on {self.connection.address}")
        return self.executor.execute(commands, ctx)

    def copy_files(self, files: Sequence[FileDescriptor], ctx: Optional[Context] = None) -> None:
        """Upload files in order, applying permissions/owner/group"""
        ctx = ctx or Context.background()
        logger.info(f"Copying {len(files)} file(s) to {self.connection.address}")
        self.file_transfer.copy_files(files, ctx)

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> "Provisioner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
