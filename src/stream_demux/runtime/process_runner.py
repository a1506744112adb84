"""Process runner feeding a child's stdout/stderr through the demux loop.

stream-demux runtime module

This module provides:
- Subprocess isolation (new session / process group)
- Stdout/stderr demultiplexed on one thread by DemuxLoop
- Reliable termination when the run does not complete normally
  (SIGTERM -> timeout -> SIGKILL to the whole process group)
- An async facade that runs the blocking loop in a worker thread and
  cancels it through the loop's CancelHandle

Key design points:
- bufsize=0 so the pipes are raw FileIO objects: select() readiness
  always matches what readinto() can return
- stdin is DEVNULL so the child never competes for the caller's stdin
- Readiness on pipes needs POSIX; Windows is rejected at setup
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import anyio
import anyio.lowlevel
import anyio.to_thread

from ..errors import DemuxCancelled, SetupError
from .demux import DEFAULT_READ_SIZE, DemuxLoop, DemuxStats, Sink
from .readiness import CancelHandle, ReadinessWaiter
from .registry import StreamRegistry, StreamTag

__all__ = [
    "ProcessResult",
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL
EXIT_POLL_INTERVAL = 0.1  # seconds between cancel checks while waiting for exit


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a completed run.

    Attributes:
        pid: Child process id
        returncode: Child return code (negative N if killed by signal N)
        stats: Demux counters for the run
    """

    pid: int
    returncode: int
    stats: DemuxStats


@dataclass
class ProcessRunner:
    """Spawn a command and stream its stdout/stderr to a sink.

    Example:
        runner = ProcessRunner()
        result = runner.run(
            ProcessSpec(argv=["curl", "https://example.org"]),
            ConsoleSink(sys.stdout.buffer),
        )
        sys.exit(result.returncode)
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    read_size: int = DEFAULT_READ_SIZE

    def run(
        self,
        spec: ProcessSpec,
        sink: Sink,
        *,
        cancel: CancelHandle | None = None,
        on_start: Callable[[int], None] | None = None,
        force_kill: Callable[[], bool] | None = None,
    ) -> ProcessResult:
        """Run the subprocess until both of its output streams close.

        This method:
        1. Starts the subprocess in an isolated process group/session
        2. Registers its stdout and stderr with a fresh StreamRegistry
        3. Runs DemuxLoop until both streams reach EOF
        4. Waits for the process and returns its return code
        5. Terminates the process group if anything above did not complete

        Args:
            spec: Process specification
            sink: Receives (tag, bytes) for every chunk read
            cancel: Optional CancelHandle that stops the loop when set
            on_start: Optional callback receiving the child pid
            force_kill: Optional predicate; when it returns True at teardown
                the process group is killed without the SIGTERM grace period

        Returns:
            ProcessResult with the return code and demux counters

        Raises:
            SetupError: If the platform is unsupported or the process cannot start
            DemuxCancelled: If cancel was set before the child exited
            WaitError, ReadError: If the demux loop fails
        """
        if IS_WINDOWS:
            raise SetupError("pipe readiness is not supported on Windows")

        process = self._spawn(spec)
        completed = False
        try:
            if on_start is not None:
                on_start(process.pid)

            if process.stdout is None or process.stderr is None:
                raise SetupError(f"pid={process.pid} started without output pipes")
            registry = StreamRegistry()
            registry.register(process.stdout.fileno(), process.stdout, StreamTag.STDOUT)
            registry.register(process.stderr.fileno(), process.stderr, StreamTag.STDERR)

            loop = DemuxLoop(
                registry,
                sink,
                waiter=ReadinessWaiter(cancel=cancel),
                read_size=self.read_size,
            )
            stats = loop.run()

            returncode = self._wait_for_exit(process, cancel)
            completed = True
            logger.debug(
                f"Subprocess completed pid={process.pid} "
                f"returncode={returncode}"
            )
            return ProcessResult(pid=process.pid, returncode=returncode, stats=stats)
        finally:
            if not completed:
                graceful = force_kill is None or not force_kill()
                self._terminate_process(process, graceful=graceful)
            self._close_pipes(process)

    async def run_async(
        self,
        spec: ProcessSpec,
        sink: Sink,
        *,
        on_start: Callable[[int], None] | None = None,
    ) -> ProcessResult:
        """Run in a worker thread without blocking the event loop.

        Cancelling the awaiting task sets the loop's CancelHandle; the worker
        thread then terminates the child and exits before the cancellation
        propagates. The sink is called from the worker thread.

        Raises:
            Same as run(), except DemuxCancelled which becomes the
            caller's cancellation
        """
        cancel = CancelHandle()
        outcome: dict[str, Any] = {}

        def _target() -> None:
            try:
                outcome["result"] = self.run(spec, sink, cancel=cancel, on_start=on_start)
            except DemuxCancelled:
                logger.debug("Worker demux loop cancelled")
            except Exception as e:
                outcome["error"] = e

        async def _cancel_on_exit() -> None:
            try:
                await anyio.sleep_forever()
            finally:
                cancel.set()

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(_cancel_on_exit)
                try:
                    await anyio.to_thread.run_sync(_target)
                finally:
                    tg.cancel_scope.cancel()
        finally:
            cancel.close()

        if "error" in outcome:
            raise outcome["error"]
        if "result" not in outcome:
            # deliver the caller's pending cancellation before falling back
            await anyio.lowlevel.checkpoint_if_cancelled()
            raise DemuxCancelled("run cancelled")
        return outcome["result"]

    def _spawn(self, spec: ProcessSpec) -> subprocess.Popen[bytes]:
        kwargs = self._build_subprocess_kwargs(spec)
        try:
            process = subprocess.Popen(  # noqa: S603
                spec.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            raise SetupError(f"failed to start {spec.argv[:1]}: {e}") from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={spec.argv[0]} cwd={spec.cwd}"
        )
        return process

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build subprocess kwargs.

        Args:
            spec: Process specification

        Returns:
            Dict of kwargs for subprocess.Popen
        """
        # POSIX: start_new_session (equivalent to setsid)
        kwargs: dict[str, Any] = {"start_new_session": True}

        if spec.cwd is not None:
            kwargs["cwd"] = str(spec.cwd)
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)

        return kwargs

    def _wait_for_exit(
        self, process: subprocess.Popen[bytes], cancel: CancelHandle | None
    ) -> int:
        """Wait for the child once its streams are closed.

        A child may close or redirect its output and keep running, so the
        wait keeps checking the cancel handle.

        Raises:
            DemuxCancelled: If cancel is set before the child exits
        """
        if cancel is None:
            return process.wait()
        while True:
            try:
                return process.wait(timeout=EXIT_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                if cancel.is_set():
                    logger.debug(f"Cancelled while waiting for pid={process.pid} to exit")
                    raise DemuxCancelled("cancelled while waiting for exit") from None

    def _terminate_process(
        self, process: subprocess.Popen[bytes], *, graceful: bool = True
    ) -> None:
        """Terminate the process group gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM to the process group (skipped when graceful is False)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL to the process group
        4. Wait up to kill_timeout for forced exit
        """
        if process.poll() is not None:
            return

        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid} graceful={graceful}")

        if graceful:
            self._signal_group(process, signal.SIGTERM)
            try:
                process.wait(timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except subprocess.TimeoutExpired:
                pass

        logger.debug(f"Force killing subprocess pid={pid}")
        self._signal_group(process, signal.SIGKILL)
        try:
            process.wait(timeout=self.kill_timeout)
            logger.debug(
                f"Subprocess killed pid={pid} "
                f"returncode={process.returncode}"
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Subprocess did not exit after kill pid={pid}")

    def _signal_group(self, process: subprocess.Popen[bytes], signum: signal.Signals) -> None:
        try:
            # Process group ID equals pid because of start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signum)
            logger.debug(f"Sent {signum.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(signum)

    @staticmethod
    def _close_pipes(process: subprocess.Popen[bytes]) -> None:
        for pipe in (process.stdout, process.stderr):
            if pipe is not None:
                pipe.close()
