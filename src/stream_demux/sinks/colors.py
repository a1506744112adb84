"""终端颜色方案。

按流的来源为输出着色：stdout 绿色，stderr 红色。
"""

from __future__ import annotations

from ..runtime.registry import StreamTag

__all__ = [
    "RESET",
    "TAG_COLORS",
]

RESET = b"\x1b[0m"

# 来源颜色（ANSI 前景色）
TAG_COLORS: dict[StreamTag, bytes] = {
    StreamTag.STDOUT: b"\x1b[32m",  # 绿色 - 主输出
    StreamTag.STDERR: b"\x1b[31m",  # 红色 - 错误输出
}
