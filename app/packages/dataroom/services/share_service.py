"""分享服务：分享链接的创建/撤销，以及按令牌限定范围的只读访问。

一次分享访问依次经过：令牌 -> 数据室 -> 锚点 -> 可见性过滤 -> 路径导航。
锚点为空表示整个数据室（等价于所有者的虚拟根），否则为被分享的文件夹；
只有位于锚点子树内的节点会被返回、可被路径解析或下载。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.packages.dataroom.core.config import get_settings
from app.packages.dataroom.core.constants import HTTP_STATUS_OK
from app.packages.dataroom.core.exceptions import (
    FolderNotFoundInScopeError,
    NotFoundError,
    ShareNotFoundError,
)
from app.packages.dataroom.core.logger import logger
from app.packages.dataroom.core.responses import create_response
from app.packages.dataroom.core.timezone import isoformat
from app.packages.dataroom.crud.datarooms import dataroom_crud
from app.packages.dataroom.crud.nodes import node_crud
from app.packages.dataroom.crud.share_links import share_link_crud
from app.packages.dataroom.models.dataroom import Dataroom
from app.packages.dataroom.models.node import DataroomNode
from app.packages.dataroom.models.share_link import ShareLink
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.node_service import (
    FilePayload,
    read_file_node,
    serialize_node,
    serialize_owner,
)
from app.packages.dataroom.services.storage_backends import StorageBackend
from app.packages.dataroom.tree import resolver
from app.packages.dataroom.tree.mirror import DataroomMirror
from app.packages.dataroom.tree.snapshot import build_snapshot


@dataclass(frozen=True)
class ShareScope:
    token: str
    dataroom: Dataroom
    anchor_id: Optional[str]


def build_share_url(token: str, base_url: Optional[str] = None) -> str:
    """优先使用配置的 PUBLIC_BASE_URL，其次使用请求来源地址。"""
    base = (get_settings().public_base_url or base_url or "").rstrip("/")
    return f"{base}/share/{token}"


def serialize_share_link(link: ShareLink, base_url: Optional[str] = None) -> dict:
    return {
        "id": link.id,
        "token": link.token,
        "dataroomId": link.dataroom_id,
        "sharedFolderId": link.shared_folder_id,
        "shareUrl": build_share_url(link.token, base_url),
        "createdAt": isoformat(link.create_time),
    }


class ShareService:
    # ----------------------------
    # 所有者侧：管理分享链接
    # ----------------------------
    def create_share_link(
        self,
        db: Session,
        *,
        user: User,
        dataroom_id: str,
        folder_id: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> dict:
        dataroom = dataroom_crud.get_owned(db, dataroom_id=dataroom_id, owner_id=user.id)
        if dataroom is None:
            raise NotFoundError("数据室不存在或无权访问")

        shared_folder_id = None
        if not resolver.is_top_level(folder_id):
            folder = node_crud.get_in_dataroom(db, dataroom_id=dataroom.id, node_id=folder_id)
            if folder is None or not folder.is_folder:
                raise NotFoundError("文件夹不存在")
            shared_folder_id = folder.id

        link = share_link_crud.create(db, {"dataroom_id": dataroom.id, "shared_folder_id": shared_folder_id})
        logger.info("Share link created for dataroom %s (folder=%s)", dataroom.id, shared_folder_id)
        return create_response("创建分享链接成功", serialize_share_link(link, base_url), HTTP_STATUS_OK)

    def list_share_links(self, db: Session, *, user: User, dataroom_id: str, base_url: Optional[str] = None) -> dict:
        dataroom = dataroom_crud.get_owned(db, dataroom_id=dataroom_id, owner_id=user.id)
        if dataroom is None:
            raise NotFoundError("数据室不存在或无权访问")
        links = share_link_crud.list_by_dataroom(db, dataroom_id=dataroom.id)
        return create_response(
            "获取分享链接成功", [serialize_share_link(link, base_url) for link in links], HTTP_STATUS_OK
        )

    def revoke_share_link(self, db: Session, *, user: User, token: str) -> dict:
        link = share_link_crud.get_by_token(db, token)
        if link is None or link.dataroom.owner_id != user.id:
            raise ShareNotFoundError()
        share_link_crud.hard_delete(db, link)
        logger.info("Share link %s revoked by user %s", link.id, user.id)
        return create_response("撤销分享链接成功", {"token": token}, HTTP_STATUS_OK)

    # ----------------------------
    # 访问者侧：按令牌解析范围
    # ----------------------------
    def resolve_share(self, db: Session, token: str) -> ShareScope:
        link = share_link_crud.get_by_token(db, token)
        if link is not None:
            return ShareScope(token=token, dataroom=link.dataroom, anchor_id=link.shared_folder_id)
        # 旧版整库分享令牌
        dataroom = dataroom_crud.get_by_share_token(db, token)
        if dataroom is not None:
            return ShareScope(token=token, dataroom=dataroom, anchor_id=None)
        raise ShareNotFoundError()

    def get_shared(self, db: Session, *, token: str, path: Optional[str] = None) -> dict:
        """返回分享范围内的节点、锚点、按路径解析出的当前文件夹与面包屑。"""
        scope = self.resolve_share(db, token)
        dataroom = scope.dataroom
        nodes = node_crud.list_by_dataroom(db, dataroom_id=dataroom.id)
        visible = resolver.visible_nodes(build_snapshot(nodes), scope.anchor_id)

        mirror = DataroomMirror(anchor_id=scope.anchor_id)
        mirror.load(visible, root_name=dataroom.name)
        folder = mirror.folder_by_path(path)
        if folder is None:
            raise FolderNotFoundInScopeError()
        mirror.navigate_to_folder(folder.id)

        current_folder_id = resolver.normalize_parent(folder.id)
        data = {
            "dataroom": {
                "id": dataroom.id,
                "name": dataroom.name,
                "owner": serialize_owner(dataroom.owner),
            },
            "nodes": [serialize_node(node) for node in visible],
            "anchorId": scope.anchor_id,
            "sharedFolderId": scope.anchor_id,
            "currentFolderId": current_folder_id,
            "breadcrumbs": [crumb.to_dict() for crumb in mirror.breadcrumbs],
        }
        return create_response("获取分享内容成功", data, HTTP_STATUS_OK)

    def authorize_shared_file(self, db: Session, *, token: str, node_id: str) -> DataroomNode:
        """按节点自身 id 重新校验其位于分享范围内，不信任客户端传入的路径。"""
        scope = self.resolve_share(db, token)
        node = node_crud.get_in_dataroom(db, dataroom_id=scope.dataroom.id, node_id=node_id)
        if node is None or not node.is_file:
            raise NotFoundError("文件不存在")
        snapshot = build_snapshot(node_crud.list_by_dataroom(db, dataroom_id=scope.dataroom.id))
        if not resolver.is_ancestor(snapshot, scope.anchor_id, node.id):
            logger.warning("Share %s denied access to node %s outside its scope", scope.token[:8], node.id)
            raise NotFoundError("文件不存在")
        return node

    def read_shared_file(self, db: Session, *, storage: StorageBackend, token: str, node_id: str) -> FilePayload:
        node = self.authorize_shared_file(db, token=token, node_id=node_id)
        return read_file_node(storage, node)


share_service = ShareService()
