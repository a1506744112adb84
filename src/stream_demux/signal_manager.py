"""信号管理模块。

将 OS 信号转换为对正在运行的 demux 循环的操作：
- SIGINT: 转发给子进程组（forward 模式）或取消循环（cancel 模式）
- SIGTERM: 取消循环，由 ProcessRunner 终止子进程

取消通过 CancelHandle（self-pipe）唤醒阻塞中的就绪等待，
从不异步打断读取调用。

支持的配置：
- SDX_SIGINT_MODE: forward | cancel
- SDX_SIGINT_DOUBLE_TAP_WINDOW: 双击取消窗口时间
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from types import FrameType
from typing import Any, Optional

from .config import SigintMode, get_config
from .runtime.readiness import CancelHandle

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)


class SignalManager:
    """信号管理器。

    Example:
        ```python
        cancel = CancelHandle()
        signal_manager = SignalManager(cancel)
        signal_manager.start()
        try:
            runner.run(spec, sink, cancel=cancel, on_start=signal_manager.attach)
        finally:
            signal_manager.stop()
        ```

    Attributes:
        cancel: 循环的取消句柄
        sigint_mode: SIGINT 处理模式
        double_tap_window: 双击取消窗口时间（秒）
    """

    def __init__(
        self,
        cancel: CancelHandle,
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
    ) -> None:
        """初始化信号管理器。

        Args:
            cancel: 循环的取消句柄
            sigint_mode: SIGINT 处理模式（默认从配置读取）
            double_tap_window: 双击取消窗口时间（默认从配置读取）
        """
        self.cancel = cancel

        # 从配置读取默认值
        config = get_config()
        self.sigint_mode = sigint_mode if sigint_mode is not None else config.sigint_mode
        self.double_tap_window = (
            double_tap_window if double_tap_window is not None else config.sigint_double_tap_window
        )

        # 内部状态
        self._child_pid: Optional[int] = None
        self._last_sigint_time: float = 0.0
        self._force_exit: bool = False
        self._cancel_signal: Optional[signal.Signals] = None
        self._original_handlers: dict[signal.Signals, Any] = {}
        self._running: bool = False

    @property
    def is_force_exit(self) -> bool:
        """是否请求强制退出（双击 SIGINT）。"""
        return self._force_exit

    @property
    def cancel_signal(self) -> Optional[signal.Signals]:
        """触发取消的信号（未取消时为 None）。"""
        return self._cancel_signal

    def attach(self, pid: int) -> None:
        """记录子进程（其进程组 ID 等于 pid）。"""
        self._child_pid = pid
        logger.debug(f"Signal manager attached to pid={pid}")

    def start(self) -> None:
        """安装 SIGINT 和 SIGTERM 处理器。

        只能在主线程安装信号处理器；在其他线程调用时不做任何事。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        self._running = True
        for signum, handler in (
            (signal.SIGINT, self._on_sigint),
            (signal.SIGTERM, self._on_sigterm),
        ):
            self._original_handlers[signum] = signal.signal(signum, handler)
        logger.debug(
            f"Signal handlers installed (mode={self.sigint_mode.value}, "
            f"double_tap_window={self.double_tap_window}s)"
        )

    def stop(self) -> None:
        """恢复原始信号处理器。"""
        if not self._running:
            return

        self._running = False
        for signum, handler in self._original_handlers.items():
            try:
                signal.signal(signum, handler)
            except (OSError, ValueError) as e:
                logger.debug(f"Error restoring {signum.name} handler: {e}")
        self._original_handlers.clear()
        logger.debug("Signal handlers removed")

    def _on_sigint(self, signum: int, frame: Optional[FrameType]) -> None:
        self.handle_sigint()

    def _on_sigterm(self, signum: int, frame: Optional[FrameType]) -> None:
        self.handle_sigterm()

    def handle_sigint(self) -> None:
        """处理 SIGINT 信号。

        - 在双击窗口内再次收到 SIGINT：强制取消
        - forward 模式且已有子进程：转发给子进程组
        - 其他情况：取消循环
        """
        current_time = time.monotonic()
        time_since_last = current_time - self._last_sigint_time
        first_tap = self._last_sigint_time == 0.0
        self._last_sigint_time = current_time

        if not first_tap and time_since_last < self.double_tap_window:
            logger.warning("Double SIGINT detected, forcing cancellation")
            self._force_exit = True
            self._request_cancel(signal.SIGINT)
            return

        child_pid = self._child_pid
        if self.sigint_mode == SigintMode.FORWARD and child_pid is not None:
            if self._forward(child_pid, signal.SIGINT):
                logger.info(
                    f"SIGINT forwarded to pid={child_pid}. "
                    f"Press Ctrl+C again within {self.double_tap_window}s to cancel."
                )
                return

        logger.info(f"SIGINT received (mode={self.sigint_mode.value}), cancelling")
        self._request_cancel(signal.SIGINT)

    def handle_sigterm(self) -> None:
        """处理 SIGTERM 信号：始终取消循环。"""
        logger.info("SIGTERM received, cancelling")
        self._request_cancel(signal.SIGTERM)

    def _forward(self, pgid: int, signum: signal.Signals) -> bool:
        """把信号转发给子进程组，失败返回 False。"""
        try:
            os.killpg(pgid, signum)
            return True
        except ProcessLookupError:
            logger.debug(f"Process group {pgid} already gone")
        except OSError as e:
            logger.debug(f"Forwarding {signum.name} failed: {e}")
        return False

    def _request_cancel(self, signum: signal.Signals) -> None:
        if self._cancel_signal is None:
            self._cancel_signal = signum
        self.cancel.set()
