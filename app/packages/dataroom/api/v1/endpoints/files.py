"""文件下载与预览路由。

携带 `token` 查询参数时按分享范围校验（无需登录），否则要求所有者身份。
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.packages.dataroom.core.dependencies import get_db, get_optional_user, get_storage
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.node_service import FilePayload, node_service
from app.packages.dataroom.services.share_service import share_service
from app.packages.dataroom.services.storage_backends import StorageBackend

router = APIRouter(prefix="/files", tags=["files"])


def _load_file(
    db: Session,
    *,
    storage: StorageBackend,
    node_id: str,
    token: Optional[str],
    current_user: Optional[User],
) -> FilePayload:
    if token:
        return share_service.read_shared_file(db, storage=storage, token=token, node_id=node_id)
    if current_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少认证信息")
    return node_service.read_file(db, user=current_user, storage=storage, node_id=node_id)


def _file_response(payload: FilePayload, *, disposition: str) -> Response:
    # RFC 5987：非 ASCII 文件名使用 filename* 编码
    encoded = quote(payload.name, safe="")
    return Response(
        content=payload.content,
        media_type=payload.mime_type,
        headers={
            "Content-Disposition": f"{disposition}; filename*=UTF-8''{encoded}",
            "Content-Length": str(len(payload.content)),
        },
    )


@router.get("/{node_id}/download")
def download_file(
    node_id: str,
    token: Optional[str] = Query(None, description="分享令牌，匿名访问时必填"),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: Optional[User] = Depends(get_optional_user),
):
    payload = _load_file(db, storage=storage, node_id=node_id, token=token, current_user=current_user)
    return _file_response(payload, disposition="attachment")


@router.get("/{node_id}/preview")
def preview_file(
    node_id: str,
    token: Optional[str] = Query(None, description="分享令牌，匿名访问时必填"),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: Optional[User] = Depends(get_optional_user),
):
    payload = _load_file(db, storage=storage, node_id=node_id, token=token, current_user=current_user)
    return _file_response(payload, disposition="inline")
