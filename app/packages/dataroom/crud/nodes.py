"""DataroomNode CRUD：节点存储。

读取/更新/删除都以数据室为边界，并通过 `Dataroom.owner_id` 限定所有者；
后代删除依赖外键 ON DELETE CASCADE，由存储层在同一事务内完成。
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Query, Session

from app.packages.dataroom.core.timezone import utcnow
from app.packages.dataroom.crud.base import CRUDBase
from app.packages.dataroom.models.dataroom import Dataroom
from app.packages.dataroom.models.node import DataroomNode
from app.packages.dataroom.tree import resolver
from app.packages.dataroom.tree.snapshot import build_snapshot


class CRUDDataroomNode(CRUDBase[DataroomNode]):
    def query_owned(self, db: Session, *, owner_id: int) -> Query:
        return (
            self.query(db)
            .join(Dataroom, Dataroom.id == DataroomNode.dataroom_id)
            .filter(Dataroom.owner_id == owner_id)
        )

    def get_owned(self, db: Session, *, node_id: str, owner_id: int) -> DataroomNode | None:
        return self.query_owned(db, owner_id=owner_id).filter(DataroomNode.id == node_id).first()

    def get_in_dataroom(self, db: Session, *, dataroom_id: str, node_id: str) -> DataroomNode | None:
        return (
            self.query(db)
            .filter(DataroomNode.dataroom_id == dataroom_id)
            .filter(DataroomNode.id == node_id)
            .first()
        )

    def list_by_ids(self, db: Session, *, node_ids: Iterable[str], owner_id: int) -> list[DataroomNode]:
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            return []
        return self.query_owned(db, owner_id=owner_id).filter(DataroomNode.id.in_(ids)).all()

    def list_by_dataroom(self, db: Session, *, dataroom_id: str) -> list[DataroomNode]:
        """一次查询取出数据室的全部节点，已按“文件夹优先、名称升序”排好。"""
        rows = self.query(db).filter(DataroomNode.dataroom_id == dataroom_id).all()
        return resolver.sort_nodes(rows)

    def list_children(self, db: Session, *, dataroom_id: str, parent_id: Optional[str]) -> list[DataroomNode]:
        query = self.query(db).filter(DataroomNode.dataroom_id == dataroom_id)
        if parent_id is None:
            query = query.filter(DataroomNode.parent_id.is_(None))
        else:
            query = query.filter(DataroomNode.parent_id == parent_id)
        return resolver.sort_nodes(query.all())

    def find_sibling_by_name(
        self,
        db: Session,
        *,
        dataroom_id: str,
        parent_id: Optional[str],
        name: str,
        exclude_id: Optional[str] = None,
    ) -> DataroomNode | None:
        """按不区分大小写的名称查找同级节点，可排除自身。"""
        query = (
            self.query(db)
            .filter(DataroomNode.dataroom_id == dataroom_id)
            .filter(DataroomNode.name_key == resolver.name_key(name))
        )
        if parent_id is None:
            query = query.filter(DataroomNode.parent_id.is_(None))
        else:
            query = query.filter(DataroomNode.parent_id == parent_id)
        if exclude_id is not None:
            query = query.filter(DataroomNode.id != exclude_id)
        return query.first()

    def list_descendants(self, db: Session, *, dataroom_id: str, node_id: str) -> list[DataroomNode]:
        """单次查询 + 内存索引扫描得到完整子树（不含自身）。"""
        snapshot = build_snapshot(self.query(db).filter(DataroomNode.dataroom_id == dataroom_id).all())
        return resolver.descendants(snapshot, node_id)

    def list_subtrees(self, db: Session, *, dataroom_id: str, node_ids: Iterable[str]) -> list[DataroomNode]:
        """多个节点各自子树（含自身）的并集，重叠部分去重。"""
        snapshot = build_snapshot(self.query(db).filter(DataroomNode.dataroom_id == dataroom_id).all())
        closure: dict[str, DataroomNode] = {}
        for node_id in node_ids:
            if node_id in snapshot:
                closure.setdefault(node_id, snapshot[node_id])
            for child in resolver.descendants(snapshot, node_id):
                closure.setdefault(child.id, child)
        return list(closure.values())

    def update_name(self, db: Session, node: DataroomNode, *, name: str) -> DataroomNode:
        node.name = name
        node.update_time = utcnow()
        db.add(node)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(node)
        return node

    def delete_many(self, db: Session, *, node_ids: Sequence[str], owner_id: int) -> int:
        """单条 DELETE 删除给定节点，后代行由外键级联删除。"""
        if not node_ids:
            return 0
        owned_datarooms = select(Dataroom.id).where(Dataroom.owner_id == owner_id)
        try:
            deleted = (
                self.query(db)
                .filter(DataroomNode.id.in_(list(node_ids)))
                .filter(DataroomNode.dataroom_id.in_(owned_datarooms))
                .delete(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.expire_all()
        return deleted


node_crud = CRUDDataroomNode(DataroomNode)
