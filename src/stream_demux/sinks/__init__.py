"""输出 Sink 实现。

Sink 是一个可调用对象 ``(StreamTag, bytes) -> None``，负责展示，
核心循环只依赖这一契约。
"""

from __future__ import annotations

from .collector import CollectingSink
from .colors import RESET, TAG_COLORS
from .console import ColorMode, ConsoleSink, resolve_color

__all__ = [
    "RESET",
    "TAG_COLORS",
    "CollectingSink",
    "ColorMode",
    "ConsoleSink",
    "resolve_color",
]
