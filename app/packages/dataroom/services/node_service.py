"""节点变更服务：数据室、文件夹与文件的创建、上传、重命名与（级联）删除。

约定：
- 所有操作先解析所有权，再校验名称，最后执行单次写入；
- 名称冲突先在应用层按“去空白 + 不区分大小写”检查，存储层唯一索引兜底，
  并发写入落败时同样表现为名称冲突；
- 删除时先遍历子树、逐个删除文件 blob（尽力而为，失败只记录告警），
  再发出一条级联删除语句，后代行由外键级联删除。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.packages.dataroom.core.constants import (
    DEFAULT_DATAROOM_NAME,
    DEFAULT_MIME_TYPE,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK,
    MAX_FILE_SIZE,
    MAX_FILE_SIZE_LABEL,
)
from app.packages.dataroom.core.enums import ConflictTypeEnum, NodeTypeEnum
from app.packages.dataroom.core.exceptions import (
    AppException,
    InvalidNameError,
    NameConflictError,
    NotFoundError,
    PartialAccessDeniedError,
    SizeExceededError,
    StorageFailureError,
)
from app.packages.dataroom.core.logger import logger
from app.packages.dataroom.core.responses import create_response
from app.packages.dataroom.core.timezone import isoformat
from app.packages.dataroom.crud.datarooms import dataroom_crud
from app.packages.dataroom.crud.nodes import node_crud
from app.packages.dataroom.models.dataroom import Dataroom
from app.packages.dataroom.models.node import DataroomNode
from app.packages.dataroom.models.user import User
from app.packages.dataroom.services.storage_backends import StorageBackend
from app.packages.dataroom.tree import resolver
from app.packages.dataroom.tree.mirror import DataroomMirror, owner_root_name
from app.packages.dataroom.utils.upload_utils import (
    format_file_size,
    generate_unique_file_name,
    normalize_name,
)


@dataclass
class UploadItem:
    """一次上传中的单个文件（内容已读入内存）。"""

    filename: str
    content: bytes
    content_type: Optional[str] = None
    size: Optional[int] = None

    @property
    def byte_size(self) -> int:
        return self.size if self.size is not None else len(self.content)


@dataclass
class FilePayload:
    name: str
    mime_type: str
    content: bytes


def serialize_node(node: Any) -> dict:
    return {
        "id": node.id,
        "name": node.name,
        "type": node.type,
        "parentId": node.parent_id,
        "dataroomId": node.dataroom_id,
        "size": int(node.size_bytes or 0),
        "mimeType": node.mime_type,
        "createdAt": isoformat(node.create_time),
        "updatedAt": isoformat(node.update_time),
    }


def serialize_owner(user: User) -> dict:
    return {"id": user.id, "name": user.nickname or user.username, "email": user.email}


def serialize_dataroom(dataroom: Dataroom) -> dict:
    return {
        "id": dataroom.id,
        "name": dataroom.name,
        "createdAt": isoformat(dataroom.create_time),
        "updatedAt": isoformat(dataroom.update_time),
    }


def _conflict(name: str, conflict_type: ConflictTypeEnum, error: AppException, **extra: Any) -> dict:
    """上传冲突条目：原因与状态码取自对应的业务异常。"""
    return {"name": name, "type": conflict_type.value, "reason": error.msg, "code": error.status_code, **extra}


def _name_conflict(name: str, taken: Iterable[str]) -> dict:
    return _conflict(
        name,
        ConflictTypeEnum.NAME,
        NameConflictError("同名文件或文件夹已存在"),
        existing=True,
        suggestedName=generate_unique_file_name(name, taken),
    )


def delete_blobs(storage: StorageBackend, nodes: Iterable[DataroomNode]) -> int:
    """逐个删除文件节点的 blob，失败只记录告警，不向上抛出。返回成功删除的数量。"""
    deleted = 0
    for node in nodes:
        if node.type != NodeTypeEnum.FILE.value or not node.file_path:
            continue
        try:
            storage.delete(node.file_path)
            deleted += 1
        except Exception:
            logger.warning("Failed to delete blob %s of node %s", node.file_path, node.id, exc_info=True)
    return deleted


class NodeService:
    # ----------------------------
    # 所有权解析
    # ----------------------------
    def _require_dataroom(self, db: Session, *, dataroom_id: str, user: User) -> Dataroom:
        dataroom = dataroom_crud.get_owned(db, dataroom_id=dataroom_id, owner_id=user.id)
        if dataroom is None:
            raise NotFoundError("数据室不存在或无权访问")
        return dataroom

    def _require_parent(self, db: Session, *, dataroom: Dataroom, parent_id: Optional[str]) -> Optional[str]:
        """校验父节点为本数据室中的文件夹；顶层（空或 `root`）返回 ``None``。"""
        if resolver.is_top_level(parent_id):
            return None
        parent = node_crud.get_in_dataroom(db, dataroom_id=dataroom.id, node_id=parent_id)
        if parent is None or not parent.is_folder:
            raise NotFoundError("父文件夹不存在")
        return parent.id

    def _require_node(self, db: Session, *, node_id: str, user: User) -> DataroomNode:
        node = node_crud.get_owned(db, node_id=node_id, owner_id=user.id)
        if node is None:
            raise NotFoundError("节点不存在或无权访问")
        return node

    # ----------------------------
    # 数据室
    # ----------------------------
    def list_datarooms(self, db: Session, *, user: User) -> dict:
        """列出当前用户的数据室；一个都没有时自动创建默认数据室。"""
        datarooms = dataroom_crud.list_owned(db, owner_id=user.id)
        if not datarooms:
            datarooms = [dataroom_crud.create(db, {"name": DEFAULT_DATAROOM_NAME, "owner_id": user.id})]
            logger.info("Created default dataroom %s for user %s", datarooms[0].id, user.id)
        return create_response("获取数据室列表成功", [serialize_dataroom(item) for item in datarooms], HTTP_STATUS_OK)

    def create_dataroom(self, db: Session, *, user: User, name: Optional[str] = None) -> dict:
        dataroom_name = normalize_name(name) if name is not None else DEFAULT_DATAROOM_NAME
        dataroom = dataroom_crud.create(db, {"name": dataroom_name, "owner_id": user.id})
        logger.info("User %s created dataroom %s", user.id, dataroom.id)
        return create_response("创建数据室成功", serialize_dataroom(dataroom), HTTP_STATUS_OK)

    def get_dataroom_view(self, db: Session, *, user: User, dataroom_id: str, path: Optional[str] = None) -> dict:
        """所有者视图：全部节点 + 按路径解析出的当前文件夹与面包屑。

        路径无法解析时回退到虚拟根，``pathResolved`` 为 ``False``。
        """
        dataroom = self._require_dataroom(db, dataroom_id=dataroom_id, user=user)
        nodes = node_crud.list_by_dataroom(db, dataroom_id=dataroom.id)

        mirror = DataroomMirror()
        mirror.load(nodes, root_name=owner_root_name(user.email or user.username))
        segments = resolver.split_path(path)
        current = mirror.navigate_to_path(segments)
        resolved = not segments or current.id != mirror.root_id

        data = {
            "dataroom": {**serialize_dataroom(dataroom), "owner": serialize_owner(user)},
            "nodes": [serialize_node(node) for node in nodes],
            "currentFolderId": current.id,
            "pathResolved": resolved,
            "breadcrumbs": [crumb.to_dict() for crumb in mirror.breadcrumbs],
        }
        return create_response("获取数据室成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 文件夹
    # ----------------------------
    def create_folder(
        self,
        db: Session,
        *,
        user: User,
        dataroom_id: str,
        name: str,
        parent_id: Optional[str] = None,
    ) -> dict:
        dataroom = self._require_dataroom(db, dataroom_id=dataroom_id, user=user)
        parent = self._require_parent(db, dataroom=dataroom, parent_id=parent_id)
        folder_name = normalize_name(name)

        if node_crud.find_sibling_by_name(db, dataroom_id=dataroom.id, parent_id=parent, name=folder_name):
            raise NameConflictError(f"同一目录下已存在名为“{folder_name}”的文件或文件夹")

        try:
            folder = node_crud.create(
                db,
                {
                    "name": folder_name,
                    "type": NodeTypeEnum.FOLDER.value,
                    "parent_id": parent,
                    "dataroom_id": dataroom.id,
                    "size_bytes": 0,
                },
            )
        except IntegrityError as exc:
            db.rollback()
            raise NameConflictError(f"同一目录下已存在名为“{folder_name}”的文件或文件夹") from exc

        logger.info("Folder %s created in dataroom %s (parent=%s)", folder.id, dataroom.id, parent)
        return create_response("创建文件夹成功", serialize_node(folder), HTTP_STATUS_OK)

    # ----------------------------
    # 上传
    # ----------------------------
    def upload_files(
        self,
        db: Session,
        *,
        user: User,
        storage: StorageBackend,
        dataroom_id: str,
        files: Sequence[UploadItem],
        parent_id: Optional[str] = None,
    ) -> dict:
        """逐个处理文件，返回 ``{uploaded, conflicts}``，单个失败不影响其余文件。

        已有名称在批次开始时取一次快照；同一批次内的同名文件不会被快照拦截，
        后一个由存储层唯一索引拒绝并计入 conflicts。
        """
        dataroom = self._require_dataroom(db, dataroom_id=dataroom_id, user=user)
        parent = self._require_parent(db, dataroom=dataroom, parent_id=parent_id)
        if not files:
            raise AppException("请选择要上传的文件", HTTP_STATUS_BAD_REQUEST)

        existing_names = [child.name for child in node_crud.list_children(db, dataroom_id=dataroom.id, parent_id=parent)]
        existing_keys = {resolver.name_key(name) for name in existing_names}
        uploaded: list[dict] = []
        conflicts: list[dict] = []

        for item in files:
            raw_name = item.filename or ""
            try:
                name = normalize_name(raw_name)
            except InvalidNameError as exc:
                conflicts.append(_conflict(raw_name, ConflictTypeEnum.NAME, exc))
                continue

            size = item.byte_size
            if size > MAX_FILE_SIZE:
                error = SizeExceededError(f"文件大小（{format_file_size(size)}）超过 {MAX_FILE_SIZE_LABEL} 限制")
                conflicts.append(_conflict(name, ConflictTypeEnum.SIZE, error, size=size))
                continue

            if resolver.name_key(name) in existing_keys:
                conflicts.append(_name_conflict(name, existing_names + [row["name"] for row in uploaded]))
                continue

            mime_type = item.content_type or DEFAULT_MIME_TYPE
            try:
                handle = storage.save(
                    item.content,
                    owner_id=user.id,
                    dataroom_id=dataroom.id,
                    filename=name,
                    content_type=mime_type,
                )
            except StorageFailureError:
                logger.exception("Blob write failed for %s in dataroom %s", name, dataroom.id)
                conflicts.append(_conflict(name, ConflictTypeEnum.STORAGE, StorageFailureError("上传失败")))
                continue

            try:
                node = node_crud.create(
                    db,
                    {
                        "name": name,
                        "type": NodeTypeEnum.FILE.value,
                        "parent_id": parent,
                        "dataroom_id": dataroom.id,
                        "file_path": handle,
                        "mime_type": mime_type,
                        "size_bytes": size,
                    },
                )
            except IntegrityError:
                db.rollback()
                logger.info("Sibling name %r taken during upload into dataroom %s", name, dataroom.id)
                self._discard_blob(storage, handle)
                conflicts.append(_name_conflict(name, existing_names + [row["name"] for row in uploaded]))
                continue
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Node insert failed for %s in dataroom %s", name, dataroom.id)
                self._discard_blob(storage, handle)
                conflicts.append(_conflict(name, ConflictTypeEnum.STORAGE, StorageFailureError("上传失败")))
                continue

            # 回滚会使会话内对象过期，这里提交后立即序列化
            uploaded.append(serialize_node(node))
            logger.info("File %s uploaded to dataroom %s (%d bytes)", node.id, dataroom.id, size)

        msg = "上传成功" if not conflicts else f"上传完成，{len(conflicts)} 个文件未上传"
        return create_response(msg, {"uploaded": uploaded, "conflicts": conflicts}, HTTP_STATUS_OK)

    def _discard_blob(self, storage: StorageBackend, handle: str) -> None:
        try:
            storage.delete(handle)
        except Exception:
            logger.warning("Failed to discard orphan blob %s", handle, exc_info=True)

    # ----------------------------
    # 重命名
    # ----------------------------
    def rename_node(self, db: Session, *, user: User, node_id: str, name: str) -> dict:
        node = self._require_node(db, node_id=node_id, user=user)
        new_name = normalize_name(name)

        sibling = node_crud.find_sibling_by_name(
            db,
            dataroom_id=node.dataroom_id,
            parent_id=node.parent_id,
            name=new_name,
            exclude_id=node.id,
        )
        if sibling is not None:
            raise NameConflictError(f"同一目录下已存在名为“{new_name}”的文件或文件夹")

        try:
            node = node_crud.update_name(db, node, name=new_name)
        except IntegrityError as exc:
            raise NameConflictError(f"同一目录下已存在名为“{new_name}”的文件或文件夹") from exc

        logger.info("Node %s renamed to %r", node.id, new_name)
        return create_response("重命名成功", serialize_node(node), HTTP_STATUS_OK)

    # ----------------------------
    # 删除
    # ----------------------------
    def delete_node(self, db: Session, *, user: User, storage: StorageBackend, node_id: str) -> dict:
        node = self._require_node(db, node_id=node_id, user=user)
        closure = [node, *node_crud.list_descendants(db, dataroom_id=node.dataroom_id, node_id=node.id)]
        blobs = delete_blobs(storage, closure)
        node_crud.delete_many(db, node_ids=[node_id], owner_id=user.id)
        logger.info("Node %s deleted with %d descendants (%d blobs removed)", node_id, len(closure) - 1, blobs)
        return create_response("删除成功", {"id": node_id, "deletedCount": 1}, HTTP_STATUS_OK)

    def bulk_delete(self, db: Session, *, user: User, storage: StorageBackend, node_ids: Sequence[str]) -> dict:
        """批量删除：任一 id 不存在或不属于当前用户时整体拒绝，不删除任何节点。"""
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            raise AppException("请选择要删除的节点", HTTP_STATUS_BAD_REQUEST)

        nodes = node_crud.list_by_ids(db, node_ids=ids, owner_id=user.id)
        if len(nodes) != len(ids):
            found = {node.id for node in nodes}
            logger.info("Bulk delete rejected for user %s: %d ids unresolved", user.id, len(set(ids) - found))
            raise PartialAccessDeniedError()

        by_dataroom: dict[str, list[str]] = {}
        for node in nodes:
            by_dataroom.setdefault(node.dataroom_id, []).append(node.id)
        closure: dict[str, DataroomNode] = {}
        for dataroom_id, root_ids in by_dataroom.items():
            for item in node_crud.list_subtrees(db, dataroom_id=dataroom_id, node_ids=root_ids):
                closure.setdefault(item.id, item)

        blobs = delete_blobs(storage, closure.values())
        deleted = node_crud.delete_many(db, node_ids=ids, owner_id=user.id)
        logger.info("Bulk deleted %d nodes (%d in closure, %d blobs removed)", deleted, len(closure), blobs)
        return create_response("批量删除成功", {"deletedCount": len(ids)}, HTTP_STATUS_OK)

    # ----------------------------
    # 下载 / 预览
    # ----------------------------
    def read_file(self, db: Session, *, user: User, storage: StorageBackend, node_id: str) -> FilePayload:
        node = self._require_node(db, node_id=node_id, user=user)
        return read_file_node(storage, node)


def read_file_node(storage: StorageBackend, node: DataroomNode) -> FilePayload:
    if not node.is_file or not node.file_path:
        raise NotFoundError("文件不存在")
    content = storage.read(node.file_path)
    return FilePayload(name=node.name, mime_type=node.mime_type or DEFAULT_MIME_TYPE, content=content)


node_service = NodeService()
