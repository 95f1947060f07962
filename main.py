from __future__ import annotations

import logging
import sys
import traceback

from framestamp.cli import main as cli_main

_log = logging.getLogger("framestamp.main")


def _filter_platform_startup_args(argv: list[str]) -> list[str]:
    """过滤平台启动器注入的参数（macOS 的 -psn_*），避免 typer 误判。"""
    return [arg for arg in argv if not (sys.platform == "darwin" and arg.startswith("-psn_"))]


def _install_exception_logging() -> None:
    """打包后没有控制台时，将未捕获异常写入日志。"""

    def _log_uncaught_exception(exc_type, exc_value, exc_tb) -> None:
        message = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        _log.error("uncaught exception\n%s", message.rstrip())
        sys.__excepthook__(exc_type, exc_value, exc_tb)

    sys.excepthook = _log_uncaught_exception


def main() -> None:
    _install_exception_logging()
    sys.argv[1:] = _filter_platform_startup_args(sys.argv[1:])
    _log.debug("startup argv=%s", sys.argv[1:])
    cli_main()


if __name__ == "__main__":
    main()
