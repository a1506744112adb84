"""Runtime module for stream demultiplexing and subprocess management.

This module provides the single-threaded demux loop, its stream registry and
readiness waiter, and a process runner that feeds a child's stdout/stderr
through the loop.
"""

from __future__ import annotations

from .demux import DEFAULT_READ_SIZE, DemuxLoop, DemuxState, DemuxStats, Sink
from .process_runner import ProcessResult, ProcessRunner, ProcessSpec
from .readiness import CancelHandle, ReadinessWaiter
from .registry import ReadableStream, RegisteredStream, StreamRegistry, StreamTag

__all__ = [
    "DEFAULT_READ_SIZE",
    "CancelHandle",
    "DemuxLoop",
    "DemuxState",
    "DemuxStats",
    "ProcessResult",
    "ProcessRunner",
    "ProcessSpec",
    "ReadableStream",
    "ReadinessWaiter",
    "RegisteredStream",
    "Sink",
    "StreamRegistry",
    "StreamTag",
]
