"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.dataroom.core.config import get_settings
from app.packages.dataroom.core.constants import ACCESS_TOKEN_TYPE
from app.packages.dataroom.core.security import (
    create_access_token,
    decode_token,
    store_current_session_id,
    store_refreshed_token,
)
from app.packages.dataroom.core.session import touch_session
from app.packages.dataroom.crud.users import user_crud
from app.packages.dataroom.db.session import SessionLocal
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.storage_backends import StorageBackend, get_storage_backend

security_scheme = HTTPBearer(auto_error=False)
settings = get_settings()

ACCESS_TOKEN_HEADER = "X-Access-Token"


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_storage() -> StorageBackend:
    """文件 blob 存储后端，测试中可通过 dependency_overrides 替换。"""
    return get_storage_backend()


def _authenticate(credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Tuple[User, str, str]:
    """校验令牌与会话，返回 (用户, 会话 ID, 续期后的令牌)，失败时抛出 401。"""
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少认证信息")

    if credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="认证类型无效")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效或已过期")

    user_id = payload.get("user_id")
    session_id = payload.get("sid")
    if user_id is None or session_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效")

    user = user_crud.get(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="用户不存在")

    ttl_seconds = max(settings.access_token_expire_minutes, 1) * 60
    if not touch_session(session_id, user.id, ttl_seconds):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效或已过期")

    refreshed_token = create_access_token({"user_id": user.id, "username": user.username, "sid": session_id})
    return user, session_id, refreshed_token


async def get_current_user(
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> User:
    """解析 ``Authorization`` 头部并返回当前认证用户，不存在或非法时抛出 401。

    校验本身在线程池中执行；会话 ID 与续期令牌写入请求上下文，
    同步路由与异常处理器都能读取到，续期令牌同时写入响应头。
    """
    store_current_session_id(None)
    user, session_id, refreshed_token = await run_in_threadpool(_authenticate, credentials, db)
    store_current_session_id(session_id)
    store_refreshed_token(refreshed_token)
    response.headers[ACCESS_TOKEN_HEADER] = refreshed_token
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """确保已认证用户仍处于激活状态，否则拒绝访问。"""
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="用户未激活")
    return current_user


async def get_optional_user(
    response: Response,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """带凭证时按 ``get_current_user`` 校验，未携带凭证时返回 ``None``（如分享访问）。"""
    if credentials is None:
        return None
    return await get_current_user(response, credentials, db)
