"""Retry policy and the retry state machine used by commands and file transfers"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple, Type, TypeVar

from sshscript.core.context import Context
from sshscript.core.errors import ConfigError, OperationCancelled, ProvisionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = "5m"
DEFAULT_RETRY_DELAY = "10s"

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Parse a duration string such as "10s", "1.5h" or "2h45m" into seconds

    Accepts the same unit suffixes as Go's ``time.ParseDuration``. A bare
    "0" is allowed; anything else without a unit is rejected, as are
    negative durations.

    Raises:
        ConfigError: If the string is not a valid duration
    """
    if not isinstance(value, str):
        raise ConfigError(f"invalid duration {value!r}: must be a string")

    text = value.strip()
    if text.startswith("+"):
        text = text[1:]
    if text == "0":
        return 0.0
    if not text or text.startswith("-"):
        raise ConfigError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if not match:
            raise ConfigError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return total


@dataclass(frozen=True)
class RetryPolicy:
    """Per-session timing policy

    Args:
        timeout: Per-command timeout in seconds (None = wait forever)
        retry_delay: Delay between attempts in seconds
        local_errors_fatal: Fail immediately when a local source file cannot be read
    """

    timeout: Optional[float] = 300.0
    retry_delay: float = 10.0
    local_errors_fatal: bool = True

    @classmethod
    def from_strings(cls, timeout: Optional[str] = None, retry_delay: Optional[str] = None,
                     local_errors_fatal: bool = True) -> "RetryPolicy":
        """Build a policy from duration strings; None means the default"""
        return cls(
            timeout=parse_duration(DEFAULT_TIMEOUT if timeout is None else timeout),
            retry_delay=parse_duration(DEFAULT_RETRY_DELAY if retry_delay is None else retry_delay),
            local_errors_fatal=local_errors_fatal,
        )


class RetryState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FATAL = "fatal"
    WAITING = "waiting"
    CANCELLED = "cancelled"


class RetryLoop:
    """Runs one unit of work until it succeeds, fails fatally, or the context ends

    Transitions::

        ATTEMPTING -> SUCCEEDED | FATAL | WAITING
        WAITING    -> ATTEMPTING | CANCELLED

    There is no attempt limit; the context is the only stop condition for
    transient failures.
    """

    def __init__(self, ctx: Context, retry_delay: float,
                 is_fatal: Callable[[BaseException], bool] = lambda e: False,
                 retry_on: Tuple[Type[BaseException], ...] = (ProvisionError, OSError)):
        """Initialize retry loop

        Args:
            ctx: Context bounding the whole loop
            retry_delay: Seconds to wait between attempts
            is_fatal: Classifier for errors that must not be retried
            retry_on: Exception types handled by the loop; anything else propagates
        """
        self.ctx = ctx
        self.retry_delay = retry_delay
        self.is_fatal = is_fatal
        self.retry_on = retry_on
        self.attempts = 0
        self.states: List[RetryState] = []
        self.last_error: Optional[BaseException] = None

    def _enter(self, state: RetryState) -> RetryState:
        self.states.append(state)
        return state

    def run(self, attempt: Callable[[], T]) -> T:
        """Drive ``attempt`` through the state machine

        Returns:
            The value returned by the first successful attempt

        Raises:
            The fatal error itself, or OperationCancelled wrapping the last error
        """
        result = None
        state = self._enter(RetryState.ATTEMPTING)
        while True:
            if state is RetryState.ATTEMPTING:
                self.attempts += 1
                try:
                    result = attempt()
                except self.retry_on as e:
                    self.last_error = e
                    if self.is_fatal(e):
                        state = self._enter(RetryState.FATAL)
                    else:
                        state = self._enter(RetryState.WAITING)
                else:
                    state = self._enter(RetryState.SUCCEEDED)

            elif state is RetryState.WAITING:
                logger.debug(f"Attempt {self.attempts} failed, retrying in {self.retry_delay}s: {self.last_error}")
                if self.ctx.wait(self.retry_delay):
                    state = self._enter(RetryState.CANCELLED)
                else:
                    state = self._enter(RetryState.ATTEMPTING)

            elif state is RetryState.SUCCEEDED:
                return result

            elif state is RetryState.FATAL:
                raise self.last_error

            elif state is RetryState.CANCELLED:
                reason = self.ctx.err()
                raise OperationCancelled(
                    f"{reason}: {self.last_error}",
                    reason=reason,
                    last_error=self.last_error,
                ) from self.last_error
