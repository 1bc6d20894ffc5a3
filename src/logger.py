"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

使用：进程入口先调用 setup_logging 配置日志，其余模块 `from logger import logger` 后直接写日志。
调度相关模块用 component_logger 绑定组件名; 配置了 json_log_file 时，
每条记录 (含 event_id/reminder_id 等绑定字段) 另以 JSON 行写入，供投递审计使用。
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal, Optional, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{extra[component]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[component]} | "
    "{name}:{function}:{line} - {message}"
)

_LEVEL_ALIAS = {"FATAL": "CRITICAL"}


def _normalize_level(level: Union[str, LogLevel]) -> str:
    return _LEVEL_ALIAS.get(str(level).upper(), str(level).upper())


def _file_handler(
    path: Path,
    *,
    level: str,
    retention: str,
    serialize: bool = False,
) -> dict:
    handler = {
        "sink": path,
        "level": level,
        "rotation": "10 MB",
        "retention": retention,
        "compression": "zip",
        "encoding": "utf-8",
        "enqueue": True,
    }
    if serialize:
        handler["serialize"] = True
    else:
        handler["format"] = FILE_FORMAT
    return handler


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
    json_log_file: Optional[Union[str, Path]] = None,
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_level = _normalize_level(log_level)
    console_lv = _normalize_level(console_level)

    error_log_file = log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")

    handlers = [
        {
            "sink": sys.stderr,
            "level": console_lv,
            "format": CONSOLE_FORMAT,
            "colorize": True,
        },
        _file_handler(log_file, level=file_level, retention="30 days"),
        _file_handler(error_log_file, level="ERROR", retention="90 days"),
    ]
    if json_log_file:
        json_log_file = Path(json_log_file)
        json_log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(_file_handler(json_log_file, level="INFO", retention="90 days", serialize=True))

    logger.configure(handlers=handlers, extra={"component": "core"})


def component_logger(component: str):
    """绑定组件名的 logger，例如 component_logger("dispatcher")"""
    return logger.bind(component=component)


__all__ = ["setup_logging", "component_logger", "logger"]
