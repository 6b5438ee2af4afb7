"""时区工具：统一生成带时区的当前时间，并把时间序列化为 ISO 字符串。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from app.packages.dataroom.core.config import get_settings


def now() -> datetime:
    """返回配置时区下的当前时间。"""
    return datetime.now(get_settings().timezone_info)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """序列化时间；SQLite 读回的无时区时间按 UTC 处理。"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_settings().timezone_info).isoformat()
