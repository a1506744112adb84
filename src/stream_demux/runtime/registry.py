"""流注册表模块。

提供 DemuxLoop 所需的活动流登记和管理：
- StreamRegistry: 句柄 -> 可读流的映射
- RegisteredStream: 单个已注册流
- StreamTag: 流的逻辑来源（仅用于路由和展示）

注册表只由运行 DemuxLoop 的线程修改，不需要加锁。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from ..errors import SetupError, UnknownHandleError

__all__ = [
    "ReadableStream",
    "RegisteredStream",
    "StreamRegistry",
    "StreamTag",
]

logger = logging.getLogger(__name__)


class StreamTag(str, Enum):
    """流的逻辑来源。

    - STDOUT: 主输出
    - STDERR: 错误输出

    只用于路由和展示，从不参与读取或 EOF 判断。
    """

    STDOUT = "stdout"
    STDERR = "stderr"


@runtime_checkable
class ReadableStream(Protocol):
    """DemuxLoop 依赖的读取能力。

    readinto() 在 EOF 时返回 0；非阻塞流暂无数据时可以返回 None。
    io.FileIO（如 bufsize=0 的 Popen 管道）和 socket.SocketIO 都满足该协议。
    """

    def fileno(self) -> int: ...

    def readinto(self, buffer: bytearray | memoryview, /) -> int | None: ...


@dataclass(frozen=True)
class RegisteredStream:
    """已注册的流。

    Attributes:
        handle: 文件描述符
        stream: 用于读取的流对象
        tag: 流的来源标签
    """

    handle: int
    stream: ReadableStream
    tag: StreamTag

    def __repr__(self) -> str:
        return f"RegisteredStream(fd={self.handle}, tag={self.tag.value})"


class StreamRegistry:
    """活动流的注册表。

    Example:
        ```python
        registry = StreamRegistry()
        registry.register(proc.stdout.fileno(), proc.stdout, StreamTag.STDOUT)
        registry.register(proc.stderr.fileno(), proc.stderr, StreamTag.STDERR)

        while not registry.is_empty():
            candidates = registry.snapshot_handles()
            ...
        ```
    """

    def __init__(self) -> None:
        """初始化空注册表。"""
        self._streams: dict[int, RegisteredStream] = {}

    def register(self, handle: int, stream: ReadableStream, tag: StreamTag) -> RegisteredStream:
        """登记新流。

        Args:
            handle: 文件描述符
            stream: 可读流对象
            tag: 流的来源标签

        Returns:
            新建的 RegisteredStream

        Raises:
            SetupError: 如果 handle 已存在
        """
        if handle in self._streams:
            raise SetupError(f"fd {handle} already registered")

        entry = RegisteredStream(handle=handle, stream=stream, tag=tag)
        self._streams[handle] = entry
        logger.debug(f"Registered stream: {entry}")
        return entry

    def unregister(self, handle: int) -> RegisteredStream:
        """注销流。

        Args:
            handle: 文件描述符

        Returns:
            被移除的 RegisteredStream

        Raises:
            UnknownHandleError: 如果 handle 未注册
        """
        if handle not in self._streams:
            raise UnknownHandleError(handle)

        entry = self._streams.pop(handle)
        logger.debug(f"Unregistered stream: {entry}")
        return entry

    def get(self, handle: int) -> RegisteredStream:
        """获取已注册的流。

        Raises:
            UnknownHandleError: 如果 handle 未注册
        """
        try:
            return self._streams[handle]
        except KeyError:
            raise UnknownHandleError(handle) from None

    def is_empty(self) -> bool:
        """是否已没有任何流（循环终止条件）。"""
        return not self._streams

    def snapshot_handles(self) -> set[int]:
        """返回当前句柄集合的副本。

        每次等待都应传入新的副本，等待原语可能修改其输入。
        """
        return set(self._streams)

    def tags(self) -> dict[int, StreamTag]:
        """句柄 -> 标签的映射（用于日志）。"""
        return {handle: entry.tag for handle, entry in self._streams.items()}

    def __len__(self) -> int:
        return len(self._streams)

    def __contains__(self, handle: object) -> bool:
        return handle in self._streams
