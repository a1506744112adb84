"""控制台输出 Sink。

将每个数据块原样写入二进制流，可选按来源着色，写完立即 flush，
保证输出与子进程产生数据的时机一致。
"""

from __future__ import annotations

from enum import Enum
from typing import BinaryIO

from ..runtime.registry import StreamTag
from .colors import RESET, TAG_COLORS

__all__ = ["ColorMode", "ConsoleSink", "resolve_color"]


class ColorMode(Enum):
    """着色模式。

    - AUTO: 输出是终端时着色
    - ALWAYS: 总是着色
    - NEVER: 从不着色
    """

    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"

    @classmethod
    def from_string(cls, value: str) -> "ColorMode":
        """从字符串解析模式，无效值返回 AUTO。"""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.AUTO


def resolve_color(mode: ColorMode, stream: object) -> bool:
    """根据模式和目标流决定是否着色。"""
    if mode is ColorMode.ALWAYS:
        return True
    if mode is ColorMode.NEVER:
        return False
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # 已关闭的流
        return False


class ConsoleSink:
    """写入二进制流的 Sink。

    Example:
        sink = ConsoleSink(sys.stdout.buffer, color=True)
        DemuxLoop(registry, sink).run()
    """

    def __init__(self, stream: BinaryIO, *, color: bool = False) -> None:
        self.stream = stream
        self.color = color

    def __call__(self, tag: StreamTag, data: bytes) -> None:
        if self.color:
            self.stream.write(TAG_COLORS[tag] + data + RESET)
        else:
            self.stream.write(data)
        self.stream.flush()
