"""树快照：把 ORM 行或接口返回的扁平节点转换为只读的内存节点。

解析器（resolver）只依赖节点的 `id`/`name`/`type`/`parent_id` 四个属性，
因此 ORM 行与这里的 ``TreeNode`` 都可以直接放进快照使用。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from app.packages.dataroom.core.constants import DEFAULT_DATAROOM_NAME, VIRTUAL_ROOT_ID
from app.packages.dataroom.core.enums import NodeTypeEnum


@dataclass
class TreeNode:
    id: str
    name: str
    type: str
    parent_id: Optional[str] = None
    dataroom_id: Optional[str] = None
    size: int = 0
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # 仅客户端镜像使用：每次整体重建，不做增量维护
    children: list[str] = field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.type == NodeTypeEnum.FOLDER.value

    @property
    def is_file(self) -> bool:
        return self.type == NodeTypeEnum.FILE.value

    @property
    def is_virtual_root(self) -> bool:
        return self.id == VIRTUAL_ROOT_ID

    @classmethod
    def from_record(cls, record: Any) -> "TreeNode":
        """从 ORM 行转换。"""
        return cls(
            id=record.id,
            name=record.name,
            type=record.type,
            parent_id=record.parent_id,
            dataroom_id=getattr(record, "dataroom_id", None),
            size=int(getattr(record, "size_bytes", 0) or 0),
            mime_type=getattr(record, "mime_type", None),
            created_at=getattr(record, "create_time", None),
            updated_at=getattr(record, "update_time", None),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TreeNode":
        """从接口返回的 camelCase 字典转换，类型标记大小写不敏感。"""
        return cls(
            id=payload["id"],
            name=payload["name"],
            type=str(payload["type"]).lower(),
            parent_id=payload.get("parentId"),
            dataroom_id=payload.get("dataroomId"),
            size=int(payload.get("size") or 0),
            mime_type=payload.get("mimeType"),
            created_at=_parse_datetime(payload.get("createdAt")),
            updated_at=_parse_datetime(payload.get("updatedAt")),
        )


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def virtual_root(name: str = DEFAULT_DATAROOM_NAME) -> TreeNode:
    """合成虚拟根节点；它从不发送给服务端，也不入库。"""
    return TreeNode(id=VIRTUAL_ROOT_ID, name=name, type=NodeTypeEnum.FOLDER.value, parent_id=None)


def build_snapshot(records: Iterable[Any]) -> dict[str, Any]:
    """按 id 建立节点映射；记录原样放入，不做复制。"""
    return {record.id: record for record in records}
