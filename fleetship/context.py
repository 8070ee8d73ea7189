"""
Call context for export operations.

An ExportContext carries an optional deadline and an explicit
cancellation switch into every export call. Backends that hand work to
another thread wait on the context and the pending result together, so
a call stays synchronous for its caller but can be abandoned early.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import CancelledError, Future
from typing import Any, TypeVar

from fleetship.exceptions import ExportCancelledError

T = TypeVar("T")


class ExportContext:
    """
    Cancellation and deadline tracking for a single export call.

    Attributes:
        timeout: Seconds allowed from creation, or None for no deadline.
        operation: Optional operation name used in log messages.

    Example:
        >>> ctx = ExportContext(timeout=5.0)
        >>> exporter.export(ctx, "status", data, "prod", uuid)

        >>> # Cancel from another thread
        >>> ctx = ExportContext()
        >>> threading.Timer(1.0, ctx.cancel).start()
        >>> exporter.export(ctx, "status", data, "prod", uuid)
    """

    def __init__(self, timeout: float | None = None, operation: str | None = None) -> None:
        """
        Initialize the context.

        Args:
            timeout: Timeout in seconds. None means no deadline.
            operation: Optional operation name.
        """
        if timeout is not None and timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")
        self.timeout = timeout
        self.operation = operation
        self._started_at = time.monotonic()
        self._deadline = None if timeout is None else self._started_at + timeout
        self._cancelled = False
        self._waiters: set[threading.Event] = set()
        self._lock = threading.Lock()

    @classmethod
    def background(cls) -> ExportContext:
        """A context that is never cancelled and has no deadline."""
        return cls()

    @property
    def cancelled(self) -> bool:
        """Whether cancel() was called."""
        with self._lock:
            return self._cancelled

    def cancel(self) -> None:
        """Cancel the context and wake every call waiting on it."""
        with self._lock:
            self._cancelled = True
            waiters = list(self._waiters)
        for event in waiters:
            event.set()

    def elapsed(self) -> float:
        """Seconds since the context was created."""
        return time.monotonic() - self._started_at

    def remaining(self) -> float | None:
        """Seconds left until the deadline, None if there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def is_expired(self) -> bool:
        """Whether the deadline has passed."""
        return self._deadline is not None and time.monotonic() >= self._deadline

    def err(self) -> ExportCancelledError | None:
        """Return the error describing why the context is done, if it is."""
        if self.cancelled:
            return ExportCancelledError("cancelled", self.elapsed())
        if self.is_expired():
            return ExportCancelledError("deadline exceeded", self.elapsed())
        return None

    def check(self) -> None:
        """
        Raise if the context is already done.

        Raises:
            ExportCancelledError: If cancelled or past the deadline.
        """
        error = self.err()
        if error is not None:
            raise error

    def wait(self, future: Future[T], cancel_future: bool = True) -> T:
        """
        Block until the future resolves or the context is done.

        Whichever happens first decides the outcome. On cancellation the
        future is cancelled as well, best effort, unless cancel_future is
        False (the future is shared with other waiters).

        Args:
            future: Pending result, typically from run_coroutine_threadsafe.
            cancel_future: Whether to cancel the future when giving up on it.

        Returns:
            The future's result.

        Raises:
            ExportCancelledError: If the context finished first.
            Exception: Whatever the future raised.
        """
        self.check()

        wakeup = threading.Event()
        future.add_done_callback(lambda _: wakeup.set())
        with self._lock:
            self._waiters.add(wakeup)
        try:
            if not self.cancelled:
                wakeup.wait(timeout=self.remaining())
        finally:
            with self._lock:
                self._waiters.discard(wakeup)

        if future.done():
            try:
                return future.result()
            except CancelledError:
                raise ExportCancelledError("cancelled", self.elapsed()) from None

        if cancel_future:
            future.cancel()
        error = self.err() or ExportCancelledError("deadline exceeded", self.elapsed())
        raise error

    def __enter__(self) -> ExportContext:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cancel()

    def __repr__(self) -> str:
        return (
            f"ExportContext(timeout={self.timeout}, operation={self.operation!r}, "
            f"cancelled={self.cancelled})"
        )
