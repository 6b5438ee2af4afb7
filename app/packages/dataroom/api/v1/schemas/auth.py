"""认证相关的请求与响应模型。"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.packages.dataroom.api.v1.schemas.common import ResponseEnvelope


class RegisterRequest(BaseModel):
    """用户注册需要的字段。"""

    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)
    email: Optional[str] = Field(default=None, max_length=255)
    nickname: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    """登录请求的字段校验规则。"""

    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)


class UserInfo(BaseModel):
    user_id: int
    username: str
    email: Optional[str] = None
    nickname: Optional[str] = None
    is_active: bool
    create_time: Optional[str] = None


class TokenResponseData(BaseModel):
    """登录成功后签发的令牌信息。"""

    access_token: str
    token_type: Literal["bearer"]


UserResponse = ResponseEnvelope[UserInfo]
TokenResponse = ResponseEnvelope[TokenResponseData]
LogoutResponse = ResponseEnvelope[None]
