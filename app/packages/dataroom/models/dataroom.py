"""数据室模型：租户边界，所有节点与分享链接都归属于某个数据室。"""

from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.dataroom.core.constants import DEFAULT_DATAROOM_NAME
from app.packages.dataroom.models.base import Base, TimestampMixin, new_id


class Dataroom(TimestampMixin, Base):
    __tablename__ = "datarooms"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), default=DEFAULT_DATAROOM_NAME)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    # 旧版的“整库分享”令牌：每个数据室至多一个，等价于锚点为顶层的分享链接
    share_token: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)

    owner: Mapped["User"] = relationship("User", back_populates="datarooms")
    nodes: Mapped[List["DataroomNode"]] = relationship(
        "DataroomNode",
        back_populates="dataroom",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    share_links: Mapped[List["ShareLink"]] = relationship(
        "ShareLink",
        back_populates="dataroom",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
