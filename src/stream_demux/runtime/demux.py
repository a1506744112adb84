"""Single-threaded stream demultiplexer.

stream-demux runtime module

DemuxLoop drains every stream in a StreamRegistry, forwarding each chunk to
a sink together with the tag of the stream it came from, and returns once
every stream has reached end-of-stream.

States:
    RUNNING (registry non-empty) -> DONE (registry empty)

Per iteration:
1. Snapshot the registered handles into a fresh candidate set
2. Block in ReadinessWaiter.wait() until at least one is ready
3. Read each ready handle once, in ascending handle order
4. Forward non-empty reads to the sink, collect handles that hit EOF
5. Unregister and close the collected handles after the dispatch pass
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from ..errors import ReadError
from .readiness import ReadinessWaiter
from .registry import RegisteredStream, StreamRegistry, StreamTag

__all__ = [
    "DEFAULT_READ_SIZE",
    "DemuxLoop",
    "DemuxState",
    "DemuxStats",
    "Sink",
]

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 4096

# Receives (tag, data) once per non-empty read, in dispatch order.
# Must not block indefinitely: the loop is single-threaded.
Sink = Callable[[StreamTag, bytes], None]


class DemuxState(str, Enum):
    """DemuxLoop state."""

    RUNNING = "running"
    DONE = "done"


@dataclass
class DemuxStats:
    """Counters collected over one DemuxLoop run.

    Attributes:
        iterations: Number of readiness waits performed
        chunks: Non-empty reads forwarded to the sink, per tag
        bytes: Bytes forwarded to the sink, per tag
        closed: Handles in the order they reached EOF
    """

    iterations: int = 0
    chunks: dict[StreamTag, int] = field(default_factory=dict)
    bytes: dict[StreamTag, int] = field(default_factory=dict)
    closed: list[int] = field(default_factory=list)

    def record(self, tag: StreamTag, size: int) -> None:
        self.chunks[tag] = self.chunks.get(tag, 0) + 1
        self.bytes[tag] = self.bytes.get(tag, 0) + size


class DemuxLoop:
    """Readiness-multiplexed reader over a fixed set of streams.

    The loop owns read access to every registered stream. Streams are
    closed once they reach EOF and are never read again.

    Example:
        registry = StreamRegistry()
        registry.register(proc.stdout.fileno(), proc.stdout, StreamTag.STDOUT)
        registry.register(proc.stderr.fileno(), proc.stderr, StreamTag.STDERR)

        stats = DemuxLoop(registry, sink).run()
    """

    def __init__(
        self,
        registry: StreamRegistry,
        sink: Sink,
        *,
        waiter: ReadinessWaiter | None = None,
        read_size: int = DEFAULT_READ_SIZE,
        close_on_eof: bool = True,
    ) -> None:
        if read_size < 1:
            raise ValueError(f"read_size must be positive, got {read_size}")
        self.registry = registry
        self.sink = sink
        self.waiter = waiter if waiter is not None else ReadinessWaiter()
        self.close_on_eof = close_on_eof
        self.stats = DemuxStats()
        # Reused for every read; each read fills it from offset 0
        self._buffer = bytearray(read_size)

    @property
    def state(self) -> DemuxState:
        if self.registry.is_empty():
            return DemuxState.DONE
        return DemuxState.RUNNING

    def run(self) -> DemuxStats:
        """Run until every registered stream has reached EOF.

        Returns:
            Counters for this run

        Raises:
            WaitError: If the readiness wait fails
            ReadError: If a read fails for a reason other than EOF
            UnknownHandleError: If the waiter reports an unregistered handle
            DemuxCancelled: If the waiter's cancel handle is set
        """
        logger.debug(f"Demux loop starting: {self.registry.tags()}")
        while self.state is DemuxState.RUNNING:
            self.step()
        logger.debug(
            f"All streams closed after {self.stats.iterations} iteration(s), "
            f"bytes={self._format_counts(self.stats.bytes)}"
        )
        return self.stats

    def step(self) -> None:
        """Run one wait-read-dispatch iteration."""
        if self.state is DemuxState.DONE:
            return

        candidates = self.registry.snapshot_handles()
        ready = self.waiter.wait(candidates)
        self.stats.iterations += 1

        finished: list[int] = []
        for handle in sorted(ready):
            entry = self.registry.get(handle)
            logger.debug(f"fd {handle} ({entry.tag.value}) is ready")
            if self._read_once(entry) == 0:
                logger.debug(f"fd {handle} reached end of stream")
                finished.append(handle)

        for handle in finished:
            self._drop(handle)

    def _read_once(self, entry: RegisteredStream) -> int | None:
        """Read whatever is available from one stream and forward it.

        Returns:
            Bytes read, 0 at EOF, None if a non-blocking stream had nothing
        """
        view = memoryview(self._buffer)
        try:
            count = entry.stream.readinto(view)
        except (OSError, ValueError) as e:
            # ValueError: the stream object was closed underneath the loop
            raise ReadError(entry.handle, entry.tag, str(e)) from e
        finally:
            view.release()

        if count is None:
            logger.debug(f"fd {entry.handle} had nothing to read")
            return None
        if count:
            logger.debug(f"Read {count} bytes from fd {entry.handle}")
            self.stats.record(entry.tag, count)
            self.sink(entry.tag, bytes(self._buffer[:count]))
        return count

    def _drop(self, handle: int) -> None:
        entry = self.registry.unregister(handle)
        self.stats.closed.append(handle)
        if self.close_on_eof:
            close = getattr(entry.stream, "close", None)
            if close is not None:
                close()
        logger.debug(f"Dropped closed fd {handle}")

    @staticmethod
    def _format_counts(counts: dict[StreamTag, int]) -> str:
        return ",".join(f"{tag.value}={n}" for tag, n in sorted(counts.items())) or "none"
