"""日志模块

入口处调用一次 setup_logging，其余模块直接 `from remindbot.logger import logger`。

- 控制台: 彩色输出，级别由 CONSOLE_LOG_LEVEL 控制；
- 文件: logs/remindbot.log 按 10 MB 轮转，另有只记录 ERROR 以上的 *_error.log；
- serialize=True 时文件按 JSON 行写入；
- uvicorn / httpx / telegram 等库走标准库 logging，统一转发到 loguru。
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"

# 第三方库的默认日志太吵，只保留 WARNING 以上
NOISY_LIBRARIES = ("httpx", "httpcore", "telegram", "apscheduler", "google_genai", "openai")


def normalize_level(level: Union[str, LogLevel]) -> str:
    level = str(level).strip().upper()
    return "CRITICAL" if level == "FATAL" else level


def error_log_path(log_file: Union[str, Path]) -> Path:
    """logs/remindbot.log -> logs/remindbot_error.log"""
    log_file = Path(log_file)
    return log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")


class _StdlibToLoguru(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[_StdlibToLoguru()], level=0, force=True)
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
    serialize: bool = False,
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    rotating = {"rotation": "10 MB", "compression": "zip", "encoding": "utf-8", "serialize": serialize}
    if not serialize:
        rotating["format"] = FILE_FORMAT

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": normalize_level(console_level),
                "format": CONSOLE_FORMAT,
                "colorize": True,
            },
            {"sink": log_file, "level": normalize_level(log_level), "retention": "30 days", **rotating},
            {"sink": error_log_path(log_file), "level": "ERROR", "retention": "90 days", **rotating},
        ]
    )
    _route_stdlib_logging()


__all__ = ["setup_logging", "normalize_level", "error_log_path", "logger"]
