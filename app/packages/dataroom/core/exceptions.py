"""异常处理模块：定义统一的业务异常、数据室错误分类与响应格式。"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from app.packages.dataroom.core.constants import (
    HTTP_STATUS_BAD_GATEWAY,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
)
from app.packages.dataroom.core.logger import logger
from app.packages.dataroom.core.security import consume_refreshed_token


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    default_msg = "请求处理失败"
    default_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, msg: Optional[str] = None, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(status_code=code or self.default_code, detail=msg or self.default_msg)
        self.data = data

    @property
    def msg(self) -> str:
        return self.detail


class InvalidNameError(AppException):
    default_msg = "名称不合法"
    default_code = HTTP_STATUS_BAD_REQUEST


# 未找到与无权访问统一返回 404，避免跨租户泄露资源是否存在
class NotFoundError(AppException):
    default_msg = "资源不存在或无权访问"
    default_code = HTTP_STATUS_NOT_FOUND


class NameConflictError(AppException):
    default_msg = "同名文件或文件夹已存在"
    default_code = HTTP_STATUS_CONFLICT


class SizeExceededError(AppException):
    default_msg = "文件大小超过 5MB 限制"
    default_code = HTTP_STATUS_PAYLOAD_TOO_LARGE


class PartialAccessDeniedError(AppException):
    default_msg = "部分节点不存在或无权访问"
    default_code = HTTP_STATUS_NOT_FOUND


class ShareNotFoundError(AppException):
    default_msg = "分享链接不存在"
    default_code = HTTP_STATUS_NOT_FOUND


class FolderNotFoundInScopeError(AppException):
    default_msg = "文件夹不存在"
    default_code = HTTP_STATUS_NOT_FOUND


class StorageFailureError(AppException):
    default_msg = "文件存储服务异常"
    default_code = HTTP_STATUS_BAD_GATEWAY


def _payload(msg: Any, data: Any, code: int) -> dict:
    payload = {"msg": msg, "data": data, "code": code}
    token = consume_refreshed_token()
    if token:
        payload["meta"] = {"access_token": token}
    return payload


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 ``HTTPException`` 及其子类转换为统一响应格式。"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_payload(exc.detail, getattr(exc, "data", None), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：记录堆栈并返回标准的 500 响应结构。"""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=_payload("服务器内部错误", None, code))
