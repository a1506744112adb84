"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import BinaryIO

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用子进程脚本
FAKE_CLI_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_cli.py"


class PipeEnd:
    """测试用管道：读端是 raw FileIO，写端是原始 fd。"""

    def __init__(self) -> None:
        read_fd, self.write_fd = os.pipe()
        self.reader: BinaryIO = open(read_fd, "rb", buffering=0)
        self.handle = read_fd

    def write(self, data: bytes) -> None:
        os.write(self.write_fd, data)

    def close_writer(self) -> None:
        if self.write_fd >= 0:
            os.close(self.write_fd)
            self.write_fd = -1

    def close(self) -> None:
        self.close_writer()
        self.reader.close()


@pytest.fixture
def make_pipe() -> Iterator[Callable[[], PipeEnd]]:
    """创建管道的工厂，测试结束后关闭所有 fd。"""
    pipes: list[PipeEnd] = []

    def _make() -> PipeEnd:
        pipe = PipeEnd()
        pipes.append(pipe)
        return pipe

    yield _make

    for pipe in pipes:
        pipe.close()


@pytest.fixture
def fake_cli() -> list[str]:
    """运行 fake_cli.py 的命令前缀。"""
    return [sys.executable, str(FAKE_CLI_PATH)]


@pytest.fixture(autouse=True)
def _clean_sdx_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """测试之间不受外部 SDX_* 环境变量影响。"""
    for key in list(os.environ):
        if key.startswith("SDX_"):
            monkeypatch.delenv(key, raising=False)
