"""stream-demux - 单线程多路读取子进程 stdout/stderr。

环境变量:
    SDX_COLOR: 着色模式 auto/always/never (默认 auto)
    SDX_DEBUG: 调试跟踪 (默认 false)
    SDX_SIGINT_MODE: SIGINT 处理模式 forward/cancel (默认 forward)

用法:
    stream-demux COMMAND [ARGS...]
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
