#!/usr/bin/env python3
"""Fake CLI for integration testing.

This script simulates a command that writes to both stdout and stderr.
Each step is flushed immediately so the parent sees it as a separate chunk.

Usage:
    python fake_cli.py [STEP ...] [--interval SECONDS] [--exit-code CODE]
                       [--hang] [--trap-sigint]

Steps:
    out:TEXT     write TEXT to stdout
    err:TEXT     write TEXT to stderr
    close-out    close stdout
    close-err    close stderr
    bytes:N      write N bytes (cycling a-z) to stdout

Arguments:
    --interval: Sleep between steps (default: 0.05 seconds)
    --exit-code: Exit code (default: 0)
    --hang: Sleep forever after the steps, keeping the streams open
    --trap-sigint: On SIGINT write "interrupted" to stderr and exit 130
"""

from __future__ import annotations

import argparse
import os
import signal
import string
import sys
import time


def _write(fd: int, data: bytes) -> None:
    while data:
        written = os.write(fd, data)
        data = data[written:]


def _close_stream(fd: int) -> None:
    """Close the pipe behind fd by pointing fd at /dev/null."""
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, fd)
    os.close(devnull)


def _on_sigint(signum: int, frame) -> None:
    """Handle SIGINT: report it and exit 128 + signum."""
    try:
        _write(2, b"interrupted\n")
    except OSError:
        pass
    os._exit(128 + signum)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fake CLI for testing")
    parser.add_argument("steps", nargs="*", help="Output steps")
    parser.add_argument("--interval", type=float, default=0.05, help="Interval between steps")
    parser.add_argument("--exit-code", type=int, default=0, help="Exit code")
    parser.add_argument("--hang", action="store_true", help="Keep running after the steps")
    parser.add_argument("--trap-sigint", action="store_true", help="Exit 130 on SIGINT")
    args = parser.parse_args()

    if args.trap_sigint:
        signal.signal(signal.SIGINT, _on_sigint)

    for index, step in enumerate(args.steps):
        if index:
            time.sleep(args.interval)
        if step.startswith("out:"):
            _write(1, step[4:].encode())
        elif step.startswith("err:"):
            _write(2, step[4:].encode())
        elif step == "close-out":
            _close_stream(1)
        elif step == "close-err":
            _close_stream(2)
        elif step.startswith("bytes:"):
            count = int(step[6:])
            alphabet = string.ascii_lowercase.encode()
            _write(1, (alphabet * (count // len(alphabet) + 1))[:count])
        else:
            parser.error(f"unknown step: {step}")

    if args.hang:
        while True:
            time.sleep(3600)

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
