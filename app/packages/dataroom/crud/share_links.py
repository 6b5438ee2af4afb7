"""ShareLink CRUD。"""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.packages.dataroom.crud.base import CRUDBase
from app.packages.dataroom.models.share_link import ShareLink


class CRUDShareLink(CRUDBase[ShareLink]):
    def get_by_token(self, db: Session, token: str) -> ShareLink | None:
        return self.query(db).filter(ShareLink.token == token).first()

    def list_by_dataroom(self, db: Session, *, dataroom_id: str) -> list[ShareLink]:
        return (
            self.query(db)
            .filter(ShareLink.dataroom_id == dataroom_id)
            .order_by(ShareLink.create_time.desc())
            .all()
        )


share_link_crud = CRUDShareLink(ShareLink)
