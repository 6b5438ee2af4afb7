"""数据室 CRUD：所有读取都按所有者过滤，除非显式通过令牌查找。"""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.packages.dataroom.crud.base import CRUDBase
from app.packages.dataroom.models.dataroom import Dataroom


class CRUDDataroom(CRUDBase[Dataroom]):
    def get_owned(self, db: Session, *, dataroom_id: str, owner_id: int) -> Dataroom | None:
        return (
            self.query(db)
            .filter(Dataroom.id == dataroom_id)
            .filter(Dataroom.owner_id == owner_id)
            .first()
        )

    def list_owned(self, db: Session, *, owner_id: int) -> list[Dataroom]:
        return (
            self.query(db)
            .filter(Dataroom.owner_id == owner_id)
            .order_by(Dataroom.create_time.asc(), Dataroom.id.asc())
            .all()
        )

    def get_by_share_token(self, db: Session, token: str) -> Dataroom | None:
        return self.query(db).filter(Dataroom.share_token == token).first()


dataroom_crud = CRUDDataroom(Dataroom)
