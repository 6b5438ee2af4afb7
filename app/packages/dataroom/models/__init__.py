"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.dataroom.models.dataroom import Dataroom
from app.packages.dataroom.models.node import DataroomNode
from app.packages.dataroom.models.share_link import ShareLink
from app.packages.dataroom.models.user import User

__all__ = [
    "Dataroom",
    "DataroomNode",
    "ShareLink",
    "User",
]
