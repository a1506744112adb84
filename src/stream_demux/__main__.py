"""stream-demux 入口点。

支持: python -m stream_demux
"""

from .app import main

if __name__ == "__main__":
    main()
