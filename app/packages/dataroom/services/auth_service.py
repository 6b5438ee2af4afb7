"""认证服务：封装注册、登录、退出与当前用户信息。"""

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.dataroom.core.config import get_settings
from app.packages.dataroom.core.constants import (
    ACCESS_TOKEN_TYPE,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_OK,
    HTTP_STATUS_UNAUTHORIZED,
)
from app.packages.dataroom.core.exceptions import AppException
from app.packages.dataroom.core.logger import logger
from app.packages.dataroom.core.responses import create_response
from app.packages.dataroom.core.security import (
    create_access_token,
    get_password_hash,
    store_refreshed_token,
    verify_password,
)
from app.packages.dataroom.core.session import create_session, delete_session
from app.packages.dataroom.core.timezone import isoformat
from app.packages.dataroom.crud.users import user_crud
from app.packages.dataroom.models.user import User


def serialize_user(user: User) -> dict:
    return {
        "user_id": user.id,
        "username": user.username,
        "email": user.email,
        "nickname": user.nickname,
        "is_active": user.is_active,
        "create_time": isoformat(user.create_time),
    }


class AuthService:
    """负责处理用户注册与登录流程，并保持逻辑聚合。"""

    def register_user(
        self,
        db: Session,
        *,
        username: str,
        password: str,
        email: Optional[str] = None,
        nickname: Optional[str] = None,
    ) -> dict:
        """创建新用户；用户名已存在时返回 409。"""
        if user_crud.get_by_username(db, username):
            raise AppException(msg="用户名已存在", code=HTTP_STATUS_CONFLICT)

        try:
            user = user_crud.create(
                db,
                {
                    "username": username,
                    "hashed_password": get_password_hash(password),
                    "email": email,
                    "nickname": nickname,
                    "is_active": True,
                },
            )
        except IntegrityError as exc:
            db.rollback()
            raise AppException(msg="用户名已存在", code=HTTP_STATUS_CONFLICT) from exc

        logger.info("User %s registered", user.username)
        return create_response("注册成功", serialize_user(user), HTTP_STATUS_OK)

    def login(self, db: Session, *, username: str, password: str) -> dict:
        """校验用户凭证，创建会话并签发访问令牌。"""
        user = user_crud.get_by_username(db, username)
        if user is None or not verify_password(password, user.hashed_password):
            logger.info("Login failed for %s", username)
            raise AppException(msg="用户名或密码错误", code=HTTP_STATUS_UNAUTHORIZED)
        if not user.is_active:
            raise AppException(msg="用户未激活", code=HTTP_STATUS_UNAUTHORIZED)

        ttl_seconds = max(get_settings().access_token_expire_minutes, 1) * 60
        session_id = create_session(user.id, ttl_seconds)
        access_token = create_access_token({"user_id": user.id, "username": user.username, "sid": session_id})

        # 登录接口同样在 meta 与响应头中回传令牌，与其他已认证接口保持一致
        store_refreshed_token(access_token)
        logger.info("User %s logged in", user.username)

        return create_response(
            "登录成功",
            {
                "access_token": access_token,
                "token_type": ACCESS_TOKEN_TYPE,
            },
            HTTP_STATUS_OK,
        )

    def logout(self, *, session_id: Optional[str]) -> dict:
        if session_id:
            delete_session(session_id)
        return create_response("退出登录成功", None, HTTP_STATUS_OK)

    def me(self, user: User) -> dict:
        return create_response("获取当前用户成功", serialize_user(user), HTTP_STATUS_OK)


auth_service = AuthService()
