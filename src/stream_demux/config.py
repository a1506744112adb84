"""SDX 环境变量配置管理。

环境变量:
    SDX_COLOR: 输出着色模式
        - auto = 标准输出是终端时着色 (默认)
        - always = 总是着色
        - never = 从不着色

    SDX_DEBUG: 调试模式
        - true/1/yes = 开启 (循环的调试跟踪输出到 stderr)
        - false/0/no = 关闭 (默认)

    SDX_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (调试日志输出到临时文件)
        - false/0/no = 关闭 (默认)

    SDX_READ_SIZE: 每次读取的最大字节数
        - 默认 4096，限制在 1-1048576 范围

    SDX_TERM_TIMEOUT: SIGTERM 之后等待子进程退出的秒数（默认 2.0）

    SDX_KILL_TIMEOUT: SIGKILL 之后等待子进程退出的秒数（默认 1.0）

    SDX_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式
        - forward = 转发给子进程组，等待其关闭输出流 (默认)
        - cancel = 取消循环并终止子进程

    SDX_SIGINT_DOUBLE_TAP_WINDOW: 双击取消窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制取消
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .runtime.demux import DEFAULT_READ_SIZE
from .runtime.process_runner import DEFAULT_KILL_TIMEOUT, DEFAULT_TERM_TIMEOUT
from .sinks.console import ColorMode

__all__ = ["Config", "ColorMode", "SigintMode", "load_config", "get_config", "reload_config"]

MAX_READ_SIZE = 1024 * 1024


class SigintMode(Enum):
    """SIGINT 处理模式。

    - FORWARD: 转发给子进程组，循环在子进程关闭输出后自然结束
    - CANCEL: 立即取消循环，由 ProcessRunner 终止子进程
    """

    FORWARD = "forward"
    CANCEL = "cancel"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式。

        Args:
            value: 模式字符串 (forward/cancel)

        Returns:
            对应的 SigintMode 枚举值，无效值返回 FORWARD
        """
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.FORWARD  # 默认值


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量，限制在 [low, high] 范围内。"""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


def _parse_read_size(value: str | None) -> int:
    """解析读取大小环境变量。"""
    if not value:
        return DEFAULT_READ_SIZE
    try:
        return max(1, min(int(value), MAX_READ_SIZE))
    except ValueError:
        return DEFAULT_READ_SIZE


@dataclass
class Config:
    """SDX 配置。

    Attributes:
        color: 输出着色模式
        debug: 调试模式（跟踪输出到 stderr）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        read_size: 每次读取的最大字节数
        term_timeout: SIGTERM 之后的等待时间（秒）
        kill_timeout: SIGKILL 之后的等待时间（秒）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击取消窗口时间（秒）
    """

    color: ColorMode = ColorMode.AUTO
    debug: bool = False
    log_debug: bool = False
    log_file: str | None = None
    read_size: int = DEFAULT_READ_SIZE
    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    sigint_mode: SigintMode = SigintMode.FORWARD
    sigint_double_tap_window: float = 1.0

    def __repr__(self) -> str:
        return (
            f"Config(color={self.color.value}, "
            f"debug={self.debug}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"read_size={self.read_size}, "
            f"term_timeout={self.term_timeout}, "
            f"kill_timeout={self.kill_timeout}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "stream-demux"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"sdx_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("SDX_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        color=ColorMode.from_string(os.environ.get("SDX_COLOR", "")),
        debug=_parse_bool(os.environ.get("SDX_DEBUG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
        read_size=_parse_read_size(os.environ.get("SDX_READ_SIZE")),
        term_timeout=_parse_float(
            os.environ.get("SDX_TERM_TIMEOUT"), DEFAULT_TERM_TIMEOUT, 0.0, 60.0
        ),
        kill_timeout=_parse_float(
            os.environ.get("SDX_KILL_TIMEOUT"), DEFAULT_KILL_TIMEOUT, 0.0, 60.0
        ),
        sigint_mode=SigintMode.from_string(os.environ.get("SDX_SIGINT_MODE", "")),
        sigint_double_tap_window=_parse_float(
            os.environ.get("SDX_SIGINT_DOUBLE_TAP_WINDOW"), 1.0, 0.1, 10.0
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
