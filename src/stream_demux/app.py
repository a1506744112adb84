"""stream-demux 应用入口。

启动一个命令，把它的 stdout/stderr 按来源着色后输出到标准输出，
并以子进程的退出码退出。

用法:
    stream-demux [--color {auto,always,never}] [--debug] COMMAND [ARGS...]
    python -m stream_demux -- curl https://example.org
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from collections.abc import Sequence

from . import __version__
from .config import Config, get_config
from .errors import DemuxCancelled, DemuxError, SetupError
from .runtime.process_runner import ProcessRunner, ProcessSpec
from .runtime.readiness import CancelHandle
from .signal_manager import SignalManager
from .sinks.console import ColorMode, ConsoleSink, resolve_color

__all__ = ["configure_logging", "exit_status", "main", "run_cli"]

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NOT_STARTED = 127

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def exit_status(returncode: int) -> int:
    """把 subprocess 返回码转换为 shell 风格的退出码。

    被信号 N 杀死的子进程（returncode == -N）映射为 128 + N。
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


def configure_logging(config: Config, *, debug: bool = False) -> None:
    """配置日志输出。

    - 默认输出到 stderr，stream_demux 命名空间只输出 WARNING 以上，
      避免和子进程的输出混在一起
    - SDX_DEBUG / --debug: stream_demux 命名空间输出 DEBUG
    - SDX_LOG_DEBUG: DEBUG 日志写入临时文件
    """
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if (debug or config.debug) else logging.WARNING

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("stream_demux").setLevel(log_level)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stream-demux",
        description="Run a command and stream its stdout/stderr, colored by origin.",
    )
    parser.add_argument(
        "--color",
        choices=[mode.value for mode in ColorMode],
        default=None,
        help="Color output (default: SDX_COLOR or auto)",
    )
    parser.add_argument("--debug", action="store_true", help="Trace the demux loop on stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to run")
    return parser


def run_cli(argv: Sequence[str] | None = None, *, config: Config | None = None) -> int:
    """运行命令并返回退出码。

    Args:
        argv: 命令行参数（不含程序名），None 表示 sys.argv[1:]
        config: 配置（默认使用全局配置）

    Returns:
        子进程的退出码；无法启动时为 127；被信号取消时为 128 + 信号编号
    """
    config = config or get_config()
    parser = _build_parser()
    args = parser.parse_args(argv)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        parser.print_usage(sys.stderr)
        print("stream-demux: error: no command given", file=sys.stderr)
        return EXIT_USAGE

    if args.debug:
        logging.getLogger("stream_demux").setLevel(logging.DEBUG)

    out = getattr(sys.stdout, "buffer", sys.stdout)
    color_mode = ColorMode(args.color) if args.color else config.color
    sink = ConsoleSink(out, color=resolve_color(color_mode, sys.stdout))

    runner = ProcessRunner(
        term_timeout=config.term_timeout,
        kill_timeout=config.kill_timeout,
        read_size=config.read_size,
    )
    logger.debug(f"Command: {command} config={config}")

    with CancelHandle() as cancel:
        signal_manager = SignalManager(
            cancel,
            sigint_mode=config.sigint_mode,
            double_tap_window=config.sigint_double_tap_window,
        )
        signal_manager.start()
        try:
            result = runner.run(
                ProcessSpec(argv=command),
                sink,
                cancel=cancel,
                on_start=signal_manager.attach,
                force_kill=lambda: signal_manager.is_force_exit,
            )
        except SetupError as e:
            logger.error(f"Could not start command: {e}")
            print(f"stream-demux: {e}", file=sys.stderr)
            return EXIT_NOT_STARTED
        except DemuxCancelled:
            signum = signal_manager.cancel_signal or signal.SIGINT
            if signal_manager.is_force_exit:
                logger.warning(f"Force exit requested, child killed, exit code {128 + int(signum)}")
            else:
                logger.info(f"Run cancelled by {signum.name}")
            return 128 + int(signum)
        except DemuxError as e:
            logger.error(f"Demux failed: {type(e).__name__}: {e}")
            print(f"stream-demux: {e}", file=sys.stderr)
            return EXIT_FAILURE
        finally:
            signal_manager.stop()

    logger.debug(
        f"Child pid={result.pid} exited returncode={result.returncode} "
        f"iterations={result.stats.iterations}"
    )
    return exit_status(result.returncode)


def main() -> None:
    """主入口点。"""
    config = get_config()
    configure_logging(config)
    sys.exit(run_cli(config=config))


if __name__ == "__main__":
    main()
