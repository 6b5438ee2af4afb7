"""日志配置模块：统一控制台/文件输出格式，并为每条日志附带请求 ID。"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

from .config import get_settings

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class _TZFormatter(logging.Formatter):
    """按 Settings.timezone 渲染时间戳；未指定 datefmt 时输出毫秒级 ISO-8601。"""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        dt = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat(sep=" ", timespec="milliseconds")


class ColorFormatter(_TZFormatter):
    """ANSI 彩色格式化器：根据日志级别着色，终端不支持时输出纯文本。"""

    RESET = "\033[0m"
    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }

    def __init__(
        self,
        fmt: str,
        datefmt: Optional[str] = None,
        style: str = "%",
        use_colors: Optional[bool] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno) if self.use_colors else None
        return f"{color}{message}{self.RESET}" if color else message


class JsonFormatter(_TZFormatter):
    """Structured JSON formatter, one object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "logger": record.name,
            "level": record.levelname,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class RequestIdFilter(logging.Filter):
    """把上下文中的 request_id 注入到每条 LogRecord。"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get() or "-"
        return True


def setup_logging() -> None:
    """初始化日志系统，确保 app/uvicorn 与根日志器共用同一套处理器。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)

    formatter_name = "json" if settings.log_json else "standard"
    line_format = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
    handlers = ["default", "file"]

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "()": "app.packages.dataroom.core.logger.ColorFormatter",
                "format": line_format,
            },
            "plain": {
                "()": "app.packages.dataroom.core.logger._TZFormatter",
                "format": line_format,
            },
            "json": {
                "()": "app.packages.dataroom.core.logger.JsonFormatter",
            },
        },
        "filters": {
            "request_id": {"()": "app.packages.dataroom.core.logger.RequestIdFilter"},
        },
        "handlers": {
            "default": {
                "level": settings.log_level,
                "class": "logging.StreamHandler",
                "formatter": formatter_name,
                "filters": ["request_id"],
            },
            "file": {
                "level": settings.log_level,
                "class": "logging.handlers.TimedRotatingFileHandler",
                "formatter": "json" if settings.log_json else "plain",
                "filename": str(settings.log_file_path),
                "when": "midnight",
                "backupCount": 14,
                "encoding": "utf-8",
                "delay": True,
                "filters": ["request_id"],
            },
        },
        "loggers": {
            name: {"handlers": handlers, "level": settings.log_level, "propagate": False}
            for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "app")
        },
        "root": {"handlers": handlers, "level": settings.log_level},
    }
    logging.config.dictConfig(logging_config)


logger = logging.getLogger("app")


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()
