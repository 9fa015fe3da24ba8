"""Cancellation and handoff primitives for the flow's worker threads.

:class:`FlowContext` is a cancellable context with an optional deadline,
shared by the orchestrator, the redirect receiver and the browser task.
Cancelling it (explicitly, through a sibling failure, or because the
deadline passed) makes every blocking wait return promptly.

:class:`OneShot` is a single-slot, write-once/read-once handoff. The flow
uses two of them: the authorization URL going to the browser task and the
redirect result coming back from the receiver.
"""

from __future__ import annotations

import queue
import threading
import time
from typing import Generic, Optional, TypeVar

from pkcecli.exceptions import FlowCancelledError

T = TypeVar("T")

# Granularity of blocking waits; bounds how late a cancellation is noticed.
POLL_INTERVAL = 0.05


class FlowContext:
    """Cancellable context with an optional monotonic deadline.

    Args:
        timeout: Seconds until the context cancels itself. ``None`` means no
            deadline.
        parent: Optional parent context; cancelling the parent cancels this
            context too, but not the other way round.
    """

    def __init__(
        self, timeout: Optional[float] = None, parent: Optional[FlowContext] = None
    ) -> None:
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @property
    def cancelled(self) -> bool:
        """Whether the context was cancelled or its deadline has passed."""
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.cancelled:
            self.cancel(self._parent.reason or "cancelled")
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("timed out waiting for authorization")
            return True
        return False

    @property
    def reason(self) -> Optional[str]:
        """Why the context was cancelled, or ``None`` while it is live."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the context. Only the first reason is kept."""
        with self._lock:
            if self._reason is None:
                self._reason = reason
            self._event.set()

    def child(self) -> FlowContext:
        """Return a context that is cancelled with this one but can also be cancelled alone."""
        return FlowContext(parent=self)

    def remaining(self) -> Optional[float]:
        """Seconds left before the nearest deadline, ``None`` without a deadline."""
        remaining = None
        if self._deadline is not None:
            remaining = max(0.0, self._deadline - time.monotonic())
        if self._parent is not None:
            inherited = self._parent.remaining()
            if inherited is not None and (remaining is None or inherited < remaining):
                remaining = inherited
        return remaining

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; return ``True`` early if cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        """Raise :class:`FlowCancelledError` if the context is no longer live."""
        if self.cancelled:
            raise FlowCancelledError(f"Authorization cancelled: {self._reason}")


class OneShot(Generic[T]):
    """A write-once, read-once slot.

    ``put`` may be called once; ``get`` blocks until the value arrives or
    the given context is cancelled, and may also be called only once.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[T] = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._written = False
        self._read = False

    @property
    def is_set(self) -> bool:
        return self._written

    def put(self, value: T) -> None:
        """Publish *value*. Raises ``RuntimeError`` on a second call."""
        with self._lock:
            if self._written:
                raise RuntimeError("one-shot value already published")
            self._written = True
        self._queue.put_nowait(value)

    def get(self, ctx: FlowContext) -> T:
        """Block until the value is published or *ctx* is cancelled.

        Raises:
            FlowCancelledError: If *ctx* is cancelled first.
            RuntimeError: If the value was already consumed.
        """
        with self._lock:
            if self._read:
                raise RuntimeError("one-shot value already consumed")
        while True:
            try:
                value = self._queue.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                ctx.raise_if_cancelled()
                continue
            with self._lock:
                self._read = True
            return value
