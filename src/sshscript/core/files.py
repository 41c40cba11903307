"""File uploads with permission/owner/group application"""

import io
import logging
import os
import shlex
from dataclasses import dataclass
from typing import Optional, Sequence

from sshscript.core.context import Context
from sshscript.core.diagnostics import DiagnosticsSink, NullSink
from sshscript.core.errors import LocalFileError, OperationCancelled
from sshscript.core.retry import RetryLoop, RetryPolicy
from sshscript.transport.base import BaseTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileDescriptor:
    """One file to place on the remote host

    Exactly one of ``source`` (local path) or ``content`` (inline text) is
    expected; callers validate that before handing descriptors over.
    """

    destination: str
    source: Optional[str] = None
    content: Optional[str] = None
    permissions: Optional[str] = None
    owner: Optional[str] = None
    group: Optional[str] = None


class FileTransfer:
    """Copies files one at a time, retrying each file as a whole"""

    def __init__(self, transport: BaseTransport, policy: RetryPolicy,
                 sink: Optional[DiagnosticsSink] = None):
        self.transport = transport
        self.policy = policy
        self.sink = sink or NullSink()

    def _is_fatal(self, error: BaseException) -> bool:
        return self.policy.local_errors_fatal and isinstance(error, LocalFileError)

    def _upload_source(self, f: FileDescriptor) -> None:
        try:
            src = open(f.source, "rb")
        except OSError as e:
            self.sink.debug(f"Failed to open source file {f.source}: {e}")
            raise LocalFileError(f"failed to open source file {f.source}: {e}", f.source) from e

        with src:
            try:
                size = os.fstat(src.fileno()).st_size
            except OSError as e:
                self.sink.debug(f"Failed to stat source file {f.source}: {e}")
                raise LocalFileError(f"failed to stat source file {f.source}: {e}", f.source) from e
            self.transport.write_file(src, size, f.destination)

        self.sink.debug(f"Copied {f.source} to remote file {f.destination}: {size} bytes",
                        source=f.source, destination=f.destination, size=size)

    def _upload_content(self, f: FileDescriptor) -> None:
        data = (f.content or "").encode("utf-8")
        try:
            self.transport.write_file(io.BytesIO(data), len(data), f.destination)
        except Exception as e:
            self.sink.debug(f"Failed to copy content to remote file {f.destination}: {e}")
            raise
        self.sink.debug(f"Created remote file {f.destination}: {len(data)} bytes",
                        destination=f.destination, size=len(data))

    def _apply_attribute(self, tool: str, value: str, destination: str) -> None:
        command = f"{tool} {shlex.quote(value)} {shlex.quote(destination)}"
        try:
            result = self.transport.run(command, self.policy.timeout)
        except Exception as e:
            self.sink.debug(f"{tool} {destination}:{value} failed", command=command,
                            stdout=getattr(e, "stdout", ""), stderr=getattr(e, "stderr", ""), error=str(e))
            raise
        self.sink.debug(f"{tool} {destination}:{value}", command=command,
                        stdout=result.stdout, stderr=result.stderr, error=None)

    def _copy_one(self, f: FileDescriptor) -> None:
        if f.source:
            self._upload_source(f)
        else:
            self._upload_content(f)

        if f.permissions:
            self._apply_attribute("chmod", f.permissions, f.destination)
        if f.owner:
            self._apply_attribute("chown", f.owner, f.destination)
        if f.group:
            self._apply_attribute("chgrp", f.group, f.destination)

    def copy_files(self, files: Sequence[FileDescriptor], ctx: Context) -> None:
        """Copy files in order

        Files already copied stay in place if a later one fails.

        Raises:
            LocalFileError: Source unreadable and ``local_errors_fatal`` is set
            OperationCancelled: ``ctx`` finished while a file was still failing
        """
        for f in files:
            loop = RetryLoop(ctx, self.policy.retry_delay, is_fatal=self._is_fatal)
            try:
                loop.run(lambda: self._copy_one(f))
            except OperationCancelled as e:
                self.sink.error(f"copy of {f.destination} failed: {e}")
                raise
            except LocalFileError as e:
                self.sink.error(f"copy of {f.destination} failed: {e}")
                raise
            logger.info(f"Copied file to {f.destination} after {loop.attempts} attempt(s)")
