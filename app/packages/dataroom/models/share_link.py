"""分享链接模型：一个令牌绑定一个数据室及可选的共享文件夹锚点。"""

import secrets
from typing import Optional

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.dataroom.models.base import Base, TimestampMixin, new_id


def generate_share_token() -> str:
    return secrets.token_urlsafe(32)


class ShareLink(TimestampMixin, Base):
    __tablename__ = "share_links"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    token: Mapped[str] = mapped_column(String(64), unique=True, index=True, default=generate_share_token)
    dataroom_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("datarooms.id", ondelete="CASCADE"),
        index=True,
    )
    # 为空表示分享整个数据室（从顶层开始）
    shared_folder_id: Mapped[Optional[str]] = mapped_column(
        String(32),
        ForeignKey("dataroom_nodes.id", ondelete="CASCADE"),
        nullable=True,
    )

    dataroom: Mapped["Dataroom"] = relationship("Dataroom", back_populates="share_links")
    shared_folder: Mapped[Optional["DataroomNode"]] = relationship("DataroomNode")
