"""Cancellable deadline context shared by every blocking point of an operation"""

import threading
import time
from typing import Optional

CANCELED = "context canceled"
DEADLINE_EXCEEDED = "context deadline exceeded"


class Context:
    """Cancellation signal with an optional deadline

    A context bounds a whole operation, not a single attempt. It can be
    cancelled from any thread; ``wait`` returns as soon as that happens.
    """

    def __init__(self, deadline: Optional[float] = None):
        """Initialize context

        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                context is done (None = no deadline)
        """
        self._deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    @classmethod
    def background(cls) -> "Context":
        """Context that only finishes when cancelled"""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> "Context":
        """Context that finishes ``seconds`` from now"""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        """Cancel the context; idempotent"""
        self._finish(CANCELED)

    def _finish(self, reason: str) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
        self._event.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (None when there is no deadline)"""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def done(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._finish(DEADLINE_EXCEEDED)
            return True
        return False

    def err(self) -> Optional[str]:
        """Why the context finished, or None while it is still live"""
        if not self.done():
            return None
        return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep for ``seconds`` unless the context finishes first

        Returns:
            True if the context finished before the delay elapsed
        """
        if self.done():
            return True
        remaining = self.remaining()
        if remaining is not None and remaining <= seconds:
            if not self._event.wait(remaining):
                self._finish(DEADLINE_EXCEEDED)
            return True
        if self._event.wait(max(0.0, seconds)):
            return True
        return self.done()
