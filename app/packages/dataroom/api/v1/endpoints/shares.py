"""分享链接路由：所有者管理链接，访问者按令牌只读浏览。"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.packages.dataroom.api.v1.schemas.shares import (
    RevokeResponse,
    ShareCreateBody,
    ShareLinkListResponse,
    ShareLinkResponse,
    SharedViewResponse,
)
from app.packages.dataroom.core.dependencies import get_current_active_user, get_db
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.share_service import share_service

router = APIRouter(prefix="/shares", tags=["shares"])


def _origin(request: Request) -> str:
    return str(request.base_url).rstrip("/")


@router.post("", response_model=ShareLinkResponse)
def create_share_link(
    payload: ShareCreateBody,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return share_service.create_share_link(
        db,
        user=current_user,
        dataroom_id=payload.dataroomId,
        folder_id=payload.folderId,
        base_url=_origin(request),
    )


@router.get("", response_model=ShareLinkListResponse)
def list_share_links(
    request: Request,
    dataroom_id: str = Query(..., alias="dataroomId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return share_service.list_share_links(db, user=current_user, dataroom_id=dataroom_id, base_url=_origin(request))


@router.delete("/{token}", response_model=RevokeResponse)
def revoke_share_link(
    token: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return share_service.revoke_share_link(db, user=current_user, token=token)


@router.get("/{token}", response_model=SharedViewResponse)
def get_shared(
    token: str,
    path: Optional[str] = Query(None, description="相对分享根目录的文件夹路径"),
    db: Session = Depends(get_db),
):
    """匿名访问：返回分享范围内的节点与当前文件夹。"""
    return share_service.get_shared(db, token=token, path=path)
