"""会话管理：使用 Redis 或内存后端实现滑动过期的登录会话。"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis

from app.packages.dataroom.core.config import get_settings
from app.packages.dataroom.core.logger import logger


class SessionBackend:
    """会话后端基类，定义创建/续期/注销三个操作。"""

    def create_session(self, user_id: int, ttl_seconds: int) -> str:  # pragma: no cover - interface definition
        raise NotImplementedError

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:  # pragma: no cover
        raise NotImplementedError

    def delete_session(self, session_id: str) -> None:  # pragma: no cover
        raise NotImplementedError


class RedisSessionBackend(SessionBackend):
    """基于 Redis 的会话后端：键即会话，TTL 即滑动过期时间。"""

    key_prefix = "dataroom:session:"

    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=2)
        self._client.ping()

    def create_session(self, user_id: int, ttl_seconds: int) -> str:
        session_id = uuid.uuid4().hex
        self._client.set(self.key_prefix + session_id, str(user_id), ex=ttl_seconds)
        return session_id

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:
        key = self.key_prefix + session_id
        if self._client.get(key) != str(user_id):
            return False
        self._client.expire(key, ttl_seconds)
        return True

    def delete_session(self, session_id: str) -> None:
        self._client.delete(self.key_prefix + session_id)


class InMemorySessionBackend(SessionBackend):
    """进程内会话后端，用于测试或 Redis 不可用时的回退。"""

    def __init__(self) -> None:
        self._store: dict[str, tuple[int, datetime]] = {}
        self._lock = threading.Lock()

    def create_session(self, user_id: int, ttl_seconds: int) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            self._store[session_id] = (user_id, _expiry(ttl_seconds))
        return session_id

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:
        with self._lock:
            record = self._store.get(session_id)
            if record is None:
                return False
            stored_user_id, expires_at = record
            if stored_user_id != user_id or expires_at < datetime.now(timezone.utc):
                self._store.pop(session_id, None)
                return False
            self._store[session_id] = (stored_user_id, _expiry(ttl_seconds))
            return True

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._store.pop(session_id, None)


def _expiry(ttl_seconds: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)


_backend: Optional[SessionBackend] = None


def _get_backend() -> SessionBackend:
    global _backend
    if _backend is not None:
        return _backend

    settings = get_settings()
    if settings.session_backend.lower() == "memory":
        _backend = InMemorySessionBackend()
        return _backend
    try:
        _backend = RedisSessionBackend(settings.redis_url)
        logger.info("Session store initialized with Redis at %s", settings.redis_url)
    except redis.RedisError as exc:  # pragma: no cover - fallback path
        logger.warning("Redis unavailable (%s), falling back to in-memory session store", exc)
        _backend = InMemorySessionBackend()
    return _backend


def create_session(user_id: int, ttl_seconds: int) -> str:
    """创建会话并返回会话 ID。"""
    return _get_backend().create_session(user_id, ttl_seconds)


def touch_session(session_id: str, user_id: int, ttl_seconds: int) -> bool:
    """刷新会话 TTL，会话不存在或用户不匹配时返回 ``False``。"""
    return _get_backend().touch_session(session_id, user_id, ttl_seconds)


def delete_session(session_id: str) -> None:
    """删除指定会话，忽略不存在的情况。"""
    _get_backend().delete_session(session_id)
