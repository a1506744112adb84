"""StreamRegistry 模块测试。

测试流注册表的基本功能：
- 登记和注销
- 重复登记 / 注销不存在的句柄
- 快照与查询
"""

from __future__ import annotations

import io

import pytest

from stream_demux.errors import SetupError, UnknownHandleError
from stream_demux.runtime.registry import (
    ReadableStream,
    RegisteredStream,
    StreamRegistry,
    StreamTag,
)


class TestStreamRegistry:
    """StreamRegistry 基本功能测试。"""

    def test_new_registry_is_empty(self):
        """新注册表为空。"""
        registry = StreamRegistry()
        assert registry.is_empty()
        assert len(registry) == 0
        assert registry.snapshot_handles() == set()

    def test_register_and_unregister(self, make_pipe):
        """登记和注销流。"""
        registry = StreamRegistry()
        pipe = make_pipe()

        entry = registry.register(pipe.handle, pipe.reader, StreamTag.STDOUT)
        assert isinstance(entry, RegisteredStream)
        assert pipe.handle in registry
        assert not registry.is_empty()

        removed = registry.unregister(pipe.handle)
        assert removed is entry
        assert pipe.handle not in registry
        assert registry.is_empty()

    def test_register_duplicate_raises_setup_error(self, make_pipe):
        """重复登记同一句柄抛出 SetupError，注册表不变。"""
        registry = StreamRegistry()
        pipe = make_pipe()
        original = registry.register(pipe.handle, pipe.reader, StreamTag.STDOUT)

        with pytest.raises(SetupError, match="already registered"):
            registry.register(pipe.handle, pipe.reader, StreamTag.STDERR)

        assert len(registry) == 1
        assert registry.get(pipe.handle) is original
        assert registry.get(pipe.handle).tag is StreamTag.STDOUT

    def test_unregister_absent_raises(self, make_pipe):
        """注销不存在的句柄抛出 UnknownHandleError，注册表不变。"""
        registry = StreamRegistry()
        pipe = make_pipe()
        registry.register(pipe.handle, pipe.reader, StreamTag.STDOUT)

        with pytest.raises(UnknownHandleError) as exc_info:
            registry.unregister(pipe.handle + 100)

        assert exc_info.value.handle == pipe.handle + 100
        assert registry.snapshot_handles() == {pipe.handle}

    def test_unregister_twice_raises(self, make_pipe):
        """同一句柄只能注销一次。"""
        registry = StreamRegistry()
        pipe = make_pipe()
        registry.register(pipe.handle, pipe.reader, StreamTag.STDOUT)
        registry.unregister(pipe.handle)

        with pytest.raises(UnknownHandleError):
            registry.unregister(pipe.handle)

    def test_unknown_handle_is_lookup_error(self):
        """UnknownHandleError 同时是 LookupError。"""
        registry = StreamRegistry()
        with pytest.raises(LookupError):
            registry.get(42)

    def test_snapshot_is_a_copy(self, make_pipe):
        """修改快照不影响注册表。"""
        registry = StreamRegistry()
        a, b = make_pipe(), make_pipe()
        registry.register(a.handle, a.reader, StreamTag.STDOUT)
        registry.register(b.handle, b.reader, StreamTag.STDERR)

        snapshot = registry.snapshot_handles()
        snapshot.clear()

        assert registry.snapshot_handles() == {a.handle, b.handle}

    def test_tags(self, make_pipe):
        """句柄到标签的映射。"""
        registry = StreamRegistry()
        a, b = make_pipe(), make_pipe()
        registry.register(a.handle, a.reader, StreamTag.STDOUT)
        registry.register(b.handle, b.reader, StreamTag.STDERR)

        assert registry.tags() == {a.handle: StreamTag.STDOUT, b.handle: StreamTag.STDERR}

    def test_repr(self, make_pipe):
        """RegisteredStream 的 repr 包含 fd 和标签。"""
        pipe = make_pipe()
        entry = RegisteredStream(handle=pipe.handle, stream=pipe.reader, tag=StreamTag.STDERR)
        assert repr(entry) == f"RegisteredStream(fd={pipe.handle}, tag=stderr)"


class TestReadableStream:
    """ReadableStream 协议测试。"""

    def test_raw_file_io_satisfies_protocol(self, make_pipe):
        """raw FileIO 满足读取协议。"""
        pipe = make_pipe()
        assert isinstance(pipe.reader, ReadableStream)

    def test_bytes_io_satisfies_protocol(self):
        """BytesIO 也有 fileno/readinto（fileno 调用时才失败）。"""
        assert isinstance(io.BytesIO(b"x"), ReadableStream)

    def test_str_does_not_satisfy_protocol(self):
        """普通对象不满足协议。"""
        assert not isinstance("text", ReadableStream)


class TestStreamTag:
    """StreamTag 枚举测试。"""

    def test_values(self):
        assert StreamTag.STDOUT.value == "stdout"
        assert StreamTag.STDERR.value == "stderr"

    def test_is_str(self):
        assert StreamTag("stderr") is StreamTag.STDERR
        assert StreamTag.STDOUT == "stdout"
