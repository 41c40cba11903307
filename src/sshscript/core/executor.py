"""Ordered command execution with retry until success, fatal error, or cancellation"""

import logging
from typing import Optional, Sequence

from sshscript.core.context import Context
from sshscript.core.diagnostics import DiagnosticsSink, NullSink
from sshscript.core.errors import OperationCancelled, TransportError, is_fatal_error
from sshscript.core.retry import RetryLoop, RetryPolicy
from sshscript.transport.base import BaseTransport, CommandResult

logger = logging.getLogger(__name__)


class CommandExecutor:
    """Runs shell commands one at a time over a transport"""

    def __init__(self, transport: BaseTransport, policy: RetryPolicy,
                 sink: Optional[DiagnosticsSink] = None):
        self.transport = transport
        self.policy = policy
        self.sink = sink or NullSink()

    def _attempt(self, command: str) -> CommandResult:
        """Run one attempt and record it whatever the outcome"""
        try:
            result = self.transport.run(command, self.policy.timeout)
        except TransportError as e:
            self.sink.debug(command, done=False, stdout=e.stdout, stderr=e.stderr, error=str(e))
            raise
        except OSError as e:
            self.sink.debug(command, done=False, stdout="", stderr="", error=str(e))
            raise
        self.sink.debug(command, done=result.success, stdout=result.stdout, stderr=result.stderr, error=None)
        return result

    def execute(self, commands: Sequence[str], ctx: Context) -> str:
        """Execute commands in order

        Each command is retried every ``retry_delay`` until it succeeds. Only
        the stdout of the last command is returned; output of earlier
        commands goes to the diagnostics sink only.

        Args:
            commands: Shell commands, run in the given order
            ctx: Context bounding the whole call

        Returns:
            Stdout of the last command ("" when there are no commands)

        Raises:
            AuthenticationError: Authentication exhausted; never retried
            OperationCancelled: ``ctx`` finished while a command was still failing
        """
        stdout = ""
        for command in commands:
            loop = RetryLoop(ctx, self.policy.retry_delay, is_fatal=is_fatal_error)
            try:
                result = loop.run(lambda: self._attempt(command))
            except OperationCancelled as e:
                last = e.last_error
                stdout = getattr(last, "stdout", "")
                stderr = getattr(last, "stderr", "")
                self.sink.error(f"execution of command '{command}' failed: {e.reason}: {last}")
                message = f"stderr output: {stderr}" if stderr else str(e)
                raise OperationCancelled(
                    message, reason=e.reason, last_error=last, stdout=stdout, stderr=stderr
                ) from last
            except TransportError as e:
                logger.error(f"Command '{command}' failed fatally: {e}")
                raise
            stdout = result.stdout
            logger.debug(f"Command '{command}' succeeded after {loop.attempts} attempt(s)")
        return stdout
