"""数据室节点模型（文件夹与文件合并为一张表）。

存储规则：
- parent_id 为空表示数据室顶层节点，其在客户端挂到虚拟根 `root` 下；
- type 为 folder/file，创建后不可变；
- 文件节点的 file_path 为 blob 存储返回的不透明句柄，size_bytes/mime_type 有意义；
  文件夹的 file_path/mime_type 为 NULL、size_bytes 为 0；
- 同一父节点下名称不区分大小写唯一：name_key 保存应用层计算的折叠键，
  唯一索引建在 name_key 上，不依赖数据库自身的 lower()（SQLite 只折叠 ASCII）。
"""

from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.packages.dataroom.core.enums import NodeTypeEnum
from app.packages.dataroom.models.base import Base, TimestampMixin, new_id
from app.packages.dataroom.tree import resolver


class DataroomNode(TimestampMixin, Base):
    __tablename__ = "dataroom_nodes"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), index=True)
    name_key: Mapped[str] = mapped_column(String(768))
    type: Mapped[str] = mapped_column(String(16), index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(32),
        ForeignKey("dataroom_nodes.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    dataroom_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("datarooms.id", ondelete="CASCADE"),
        index=True,
    )
    file_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)

    dataroom: Mapped["Dataroom"] = relationship("Dataroom", back_populates="nodes")

    @validates("name")
    def _sync_name_key(self, _key: str, value: str) -> str:
        self.name_key = resolver.name_key(value)
        return value

    @property
    def is_folder(self) -> bool:
        return self.type == NodeTypeEnum.FOLDER.value

    @property
    def is_file(self) -> bool:
        return self.type == NodeTypeEnum.FILE.value

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<DataroomNode {self.type} {self.name!r} id={self.id} parent={self.parent_id}>"


Index(
    "uq_dataroom_nodes_sibling_name",
    DataroomNode.dataroom_id,
    func.coalesce(DataroomNode.parent_id, ""),
    DataroomNode.name_key,
    unique=True,
)
