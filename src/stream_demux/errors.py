"""Demux 异常类。

所有异常都是致命的：核心循环没有任何重试逻辑。
流结束（EOF）不是异常，而是正常的状态转换。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .runtime.registry import StreamTag

__all__ = [
    "DemuxError",
    "SetupError",
    "WaitError",
    "ReadError",
    "UnknownHandleError",
    "DemuxCancelled",
]


class DemuxError(Exception):
    """Demux 基础异常。"""
    pass


class SetupError(DemuxError):
    """启动前的错误（重复注册、子进程启动失败、平台不支持）。"""
    pass


class WaitError(DemuxError):
    """就绪等待原语本身失败（如无效的文件描述符）。"""
    pass


class ReadError(DemuxError):
    """除正常 EOF 以外的读取失败。

    Attributes:
        handle: 出错的流句柄
        tag: 流的来源标签
    """

    def __init__(self, handle: int, tag: StreamTag, message: str) -> None:
        self.handle = handle
        self.tag = tag
        super().__init__(f"fd {handle} ({tag.value}): {message}")


class UnknownHandleError(DemuxError, LookupError):
    """查询或注销了一个未注册的句柄（逻辑错误）。

    Attributes:
        handle: 未注册的句柄
    """

    def __init__(self, handle: int) -> None:
        self.handle = handle
        super().__init__(f"fd {handle} is not registered")


class DemuxCancelled(DemuxError):
    """循环的 CancelHandle 被触发。"""
    pass
