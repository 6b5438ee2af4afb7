"""认证相关路由定义。"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.packages.dataroom.api.v1.schemas.auth import (
    LoginRequest,
    LogoutResponse,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from app.packages.dataroom.core.dependencies import ACCESS_TOKEN_HEADER, get_current_active_user, get_db
from app.packages.dataroom.core.security import get_current_session_id
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.auth_service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> UserResponse:
    """调用认证服务完成注册流程并返回统一响应。"""
    return auth_service.register_user(
        db,
        username=payload.username,
        password=payload.password,
        email=payload.email,
        nickname=payload.nickname,
    )


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)) -> TokenResponse:
    """校验凭证并签发访问令牌。"""
    result = auth_service.login(db, username=payload.username, password=payload.password)
    response.headers[ACCESS_TOKEN_HEADER] = result["data"]["access_token"]
    return result


@router.post("/logout", response_model=LogoutResponse)
def logout(_: User = Depends(get_current_active_user)) -> LogoutResponse:
    """退出登录，前端需删除本地缓存的令牌。"""
    return auth_service.logout(session_id=get_current_session_id())


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_active_user)) -> UserResponse:
    return auth_service.me(current_user)
