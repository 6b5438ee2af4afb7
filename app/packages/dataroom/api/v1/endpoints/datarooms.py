"""数据室与节点路由：列表/创建数据室、文件夹、上传、重命名与删除。"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from app.packages.dataroom.api.v1.schemas.dataroom import (
    BulkDeleteBody,
    BulkDeleteResponse,
    DataroomCreateBody,
    DataroomListResponse,
    DataroomResponse,
    DataroomViewResponse,
    DeleteResponse,
    FolderCreateBody,
    NodeResponse,
    RenameBody,
    UploadResponse,
)
from app.packages.dataroom.core.constants import MAX_FILE_SIZE
from app.packages.dataroom.core.dependencies import get_current_active_user, get_db, get_storage
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.node_service import UploadItem, node_service
from app.packages.dataroom.services.storage_backends import StorageBackend

router = APIRouter(tags=["datarooms"])


@router.get("/datarooms", response_model=DataroomListResponse)
def list_datarooms(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.list_datarooms(db, user=current_user)


@router.post("/datarooms", response_model=DataroomResponse)
def create_dataroom(
    payload: DataroomCreateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.create_dataroom(db, user=current_user, name=payload.name)


@router.get("/datarooms/{dataroom_id}", response_model=DataroomViewResponse)
def get_dataroom(
    dataroom_id: str,
    path: Optional[str] = Query(None, description="以 / 分隔、逐段编码的文件夹路径"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.get_dataroom_view(db, user=current_user, dataroom_id=dataroom_id, path=path)


@router.post("/folders", response_model=NodeResponse)
def create_folder(
    payload: FolderCreateBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.create_folder(
        db,
        user=current_user,
        dataroom_id=payload.dataroomId,
        name=payload.name,
        parent_id=payload.parentId,
    )


@router.post("/files/upload", response_model=UploadResponse)
async def upload_files(
    dataroom_id: str = Form(..., alias="dataroomId"),
    parent_id: Optional[str] = Form(None, alias="parentId"),
    files: list[UploadFile] = File(...),
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_active_user),
):
    items: list[UploadItem] = []
    for up in files:
        # 已知超限的文件不读入内存，交由服务层按大小记入 conflicts
        if up.size is not None and up.size > MAX_FILE_SIZE:
            items.append(UploadItem(filename=up.filename or "", content=b"", content_type=up.content_type, size=up.size))
            continue
        content = await up.read()
        items.append(
            UploadItem(
                filename=up.filename or "",
                content=content,
                content_type=up.content_type,
                size=len(content),
            )
        )
    return node_service.upload_files(
        db,
        user=current_user,
        storage=storage,
        dataroom_id=dataroom_id,
        parent_id=parent_id,
        files=items,
    )


# 必须先于 /nodes/{node_id} 注册，避免 bulk-delete 被当作节点 id；
# 部分客户端不支持带请求体的 DELETE，因此同时接受 POST
@router.api_route("/nodes/bulk-delete", methods=["DELETE", "POST"], response_model=BulkDeleteResponse)
def bulk_delete(
    payload: BulkDeleteBody,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.bulk_delete(db, user=current_user, storage=storage, node_ids=payload.nodeIds)


@router.patch("/nodes/{node_id}", response_model=NodeResponse)
def rename_node(
    node_id: str,
    payload: RenameBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.rename_node(db, user=current_user, node_id=node_id, name=payload.name)


@router.delete("/nodes/{node_id}", response_model=DeleteResponse)
def delete_node(
    node_id: str,
    db: Session = Depends(get_db),
    storage: StorageBackend = Depends(get_storage),
    current_user: User = Depends(get_current_active_user),
):
    return node_service.delete_node(db, user=current_user, storage=storage, node_id=node_id)
