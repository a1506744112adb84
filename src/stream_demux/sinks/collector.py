"""收集型 Sink。

记录每一次 (tag, bytes) 调用，便于测试和在内存中处理子进程输出。
"""

from __future__ import annotations

import threading

from ..runtime.registry import StreamTag

__all__ = ["CollectingSink"]


class CollectingSink:
    """按调用顺序记录所有数据块。

    Attributes:
        calls: (tag, data) 列表，顺序与 DemuxLoop 的分发顺序一致
    """

    def __init__(self) -> None:
        self.calls: list[tuple[StreamTag, bytes]] = []
        self._lock = threading.Lock()

    def __call__(self, tag: StreamTag, data: bytes) -> None:
        with self._lock:
            self.calls.append((tag, data))

    def chunks(self, tag: StreamTag) -> list[bytes]:
        """某个来源的所有数据块。"""
        with self._lock:
            return [data for t, data in self.calls if t is tag]

    def data(self, tag: StreamTag) -> bytes:
        """某个来源的完整字节序列。"""
        return b"".join(self.chunks(tag))

    def text(self, tag: StreamTag, encoding: str = "utf-8") -> str:
        """某个来源的完整文本（无法解码的字节被替换）。"""
        return self.data(tag).decode(encoding, errors="replace")
