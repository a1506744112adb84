"""Readiness waiting over a set of stream handles.

stream-demux runtime module

This module provides:
- ReadinessWaiter: blocks until at least one handle is readable (data or EOF)
- CancelHandle: self-pipe that wakes a blocked wait from another thread
  or from a signal handler

Key design points:
- A fresh selector is built for every wait call and closed afterwards;
  the candidate set is not retained
- Cancellation is one more readable handle in the wait, never an
  asynchronous interrupt of a read
"""

from __future__ import annotations

import logging
import os
import selectors
from collections.abc import Callable

from ..errors import DemuxCancelled, WaitError

__all__ = [
    "CancelHandle",
    "ReadinessWaiter",
]

logger = logging.getLogger(__name__)

# Marker stored as selector key data for the cancel pipe
_WAKE = object()


class CancelHandle:
    """Self-pipe used to cancel a blocked readiness wait.

    set() only flips a flag and writes one byte, so it is safe to call from
    another thread or from a signal handler running on the waiting thread.

    Example:
        cancel = CancelHandle()
        waiter = ReadinessWaiter(cancel=cancel)
        # elsewhere: cancel.set()
    """

    def __init__(self) -> None:
        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._write_fd, False)
        self._set = False
        self._closed = False

    def set(self) -> None:
        """Request cancellation and wake any waiter."""
        if self._set or self._closed:
            return
        self._set = True
        try:
            os.write(self._write_fd, b"\0")
        except BlockingIOError:
            # pipe already holds a wake byte
            pass

    def is_set(self) -> bool:
        return self._set

    def fileno(self) -> int:
        """Read end of the pipe, registered alongside the data streams."""
        return self._read_fd

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        os.close(self._read_fd)
        os.close(self._write_fd)

    def __enter__(self) -> CancelHandle:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class ReadinessWaiter:
    """Block until at least one candidate handle is ready to read.

    EOF is reported as readable by the OS, so a closed stream is returned
    as ready and its next read yields zero bytes.

    Attributes:
        cancel: Optional CancelHandle watched alongside the candidates
    """

    def __init__(
        self,
        *,
        cancel: CancelHandle | None = None,
        selector_factory: Callable[[], selectors.BaseSelector] = selectors.DefaultSelector,
    ) -> None:
        self.cancel = cancel
        self._selector_factory = selector_factory

    def wait(self, candidates: set[int], timeout: float | None = None) -> set[int]:
        """Wait for readiness.

        Args:
            candidates: Handles to watch. Treated as a throwaway copy.
            timeout: Seconds to wait, None blocks indefinitely

        Returns:
            The subset of candidates that is ready; empty only on timeout

        Raises:
            WaitError: If the candidate set is empty or the selector fails
            DemuxCancelled: If the cancel handle is set
        """
        if self.cancel is not None and self.cancel.is_set():
            raise DemuxCancelled("cancelled before wait")
        if not candidates:
            raise WaitError("no handles to wait on")

        selector = self._selector_factory()
        try:
            for handle in candidates:
                selector.register(handle, selectors.EVENT_READ)
            if self.cancel is not None:
                selector.register(self.cancel.fileno(), selectors.EVENT_READ, _WAKE)
            events = selector.select(timeout)
        except (OSError, ValueError) as e:
            raise WaitError(f"readiness wait failed on {sorted(candidates)}: {e}") from e
        finally:
            selector.close()

        if self.cancel is not None and self.cancel.is_set():
            raise DemuxCancelled("cancelled during wait")

        return {key.fd for key, _ in events if key.data is not _WAKE}
