"""枚举定义：约束节点类型与上传冲突类型的可选值。"""

from enum import Enum


class NodeTypeEnum(str, Enum):
    """数据室节点类型，创建后不可变更。"""

    FOLDER = "folder"
    FILE = "file"


class ConflictTypeEnum(str, Enum):
    """批量上传中单个文件被拒绝的原因分类。"""

    NAME = "name"
    SIZE = "size"
    STORAGE = "storage"
