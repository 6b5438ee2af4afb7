"""树解析器：基于单个数据室的节点快照回答结构性问题，不产生任何副作用。

快照是 ``{id: node}`` 的映射，节点只需具备 `id`、`name`、`type`、`parent_id`
四个属性。`None` 与虚拟根 id `root` 在这里都表示“顶层”，两者可以互换：
服务端数据的顶层节点 `parent_id` 为 `None`，客户端镜像则把它们挂到 `root` 下。

排序策略固定为：文件夹在前、文件在后，同类按名称不区分大小写升序，
再按原始名称与 id 兜底，保证结果完全确定。

名称比较（冲突检测与路径解析）统一为去除首尾空白后不区分大小写。
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence
from urllib.parse import quote, unquote

from app.packages.dataroom.core.constants import DEFAULT_DATAROOM_NAME, VIRTUAL_ROOT_ID
from app.packages.dataroom.core.enums import NodeTypeEnum
from app.packages.dataroom.core.logger import logger
from app.packages.dataroom.tree.snapshot import virtual_root

Snapshot = Mapping[str, Any]


@dataclass(frozen=True)
class Breadcrumb:
    id: str
    name: str
    path: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "path": self.path}


# ----------------------------
# 基础判定
# ----------------------------
def is_top_level(parent_id: Optional[str]) -> bool:
    return parent_id is None or parent_id == VIRTUAL_ROOT_ID


def normalize_parent(parent_id: Optional[str]) -> Optional[str]:
    """把虚拟根折叠为 ``None``，便于比较父子关系。"""
    return None if is_top_level(parent_id) else parent_id


def is_folder(node: Any) -> bool:
    return node.type == NodeTypeEnum.FOLDER.value


def name_key(name: str) -> str:
    """同级名称冲突与路径匹配所用的比较键，非 ASCII 字符同样按大小写折叠。"""
    return (name or "").strip().casefold()


def sort_key(node: Any) -> tuple:
    return (0 if is_folder(node) else 1, node.name.casefold(), node.name, node.id)


def sort_nodes(nodes: Iterable[Any]) -> list:
    return sorted(nodes, key=sort_key)


def _persisted(nodes: Snapshot) -> Iterable[Any]:
    return (node for node_id, node in nodes.items() if node_id != VIRTUAL_ROOT_ID)


# ----------------------------
# 子节点
# ----------------------------
def children_index(nodes: Snapshot) -> dict[Optional[str], list[str]]:
    """一次分组遍历构建 ``父 id -> 有序子 id 列表``，顶层的键为 ``None``。"""
    grouped: dict[Optional[str], list[Any]] = {}
    for node in _persisted(nodes):
        grouped.setdefault(normalize_parent(node.parent_id), []).append(node)
    return {parent: [child.id for child in sort_nodes(children)] for parent, children in grouped.items()}


def children_of(nodes: Snapshot, parent_id: Optional[str]) -> list:
    """返回 ``parent_id`` 的直接子节点（已排序）；传 ``None`` 或 ``root`` 取顶层。"""
    target = normalize_parent(parent_id)
    return sort_nodes(node for node in _persisted(nodes) if normalize_parent(node.parent_id) == target)


def find_child_by_name(
    nodes: Snapshot,
    parent_id: Optional[str],
    name: str,
    *,
    folders_only: bool = False,
    exclude_id: Optional[str] = None,
) -> Optional[Any]:
    key = name_key(name)
    for child in children_of(nodes, parent_id):
        if child.id == exclude_id or (folders_only and not is_folder(child)):
            continue
        if name_key(child.name) == key:
            return child
    return None


# ----------------------------
# 祖先与路径
# ----------------------------
def ancestors(nodes: Snapshot, node_id: Optional[str]) -> Optional[list]:
    """自下而上返回 ``node_id`` 的持久化祖先（不含自身、不含虚拟根）。

    节点不在快照中返回 ``None``；父指针断裂（父节点缺失）时在断点处停止。
    遍历步数以快照大小为上界，遇到环会记录告警并返回 ``None``。
    """
    node = nodes.get(node_id) if node_id is not None else None
    if node is None or node.id == VIRTUAL_ROOT_ID:
        return None if node is None else []

    chain: list = []
    seen = {node.id}
    parent_id = normalize_parent(node.parent_id)
    while parent_id is not None:
        if parent_id in seen or len(seen) > len(nodes):
            logger.warning("Cycle detected while walking parents of node %s", node_id)
            return None
        parent = nodes.get(parent_id)
        if parent is None:
            break
        seen.add(parent_id)
        chain.append(parent)
        parent_id = normalize_parent(parent.parent_id)
    return chain


def depth_of(nodes: Snapshot, node_id: Optional[str]) -> Optional[int]:
    """顶层节点深度为 1，虚拟根为 0；不存在或成环返回 ``None``。"""
    if is_top_level(node_id):
        return 0
    chain = ancestors(nodes, node_id)
    return None if chain is None else len(chain) + 1


def is_ancestor(nodes: Snapshot, candidate_id: Optional[str], node_id: Optional[str]) -> bool:
    """``candidate_id`` 等于 ``node_id``，或位于 ``node_id`` 通往根的路径上时为真。

    顶层（``None``/``root``）是快照中所有节点的祖先；不在快照中的节点只与自身相等。
    """
    if candidate_id == node_id:
        return True
    if is_top_level(candidate_id):
        return is_top_level(node_id) or node_id in nodes
    chain = ancestors(nodes, node_id)
    if not chain:
        return False
    return any(parent.id == candidate_id for parent in chain)


def path_to(
    nodes: Snapshot,
    node_id: Optional[str],
    *,
    anchor_id: Optional[str] = None,
    include_root: bool = True,
    root_name: str = DEFAULT_DATAROOM_NAME,
) -> list:
    """返回从锚点到 ``node_id``（含）的节点序列。

    - 所有者模式（``anchor_id`` 为空）：首元素为合成的虚拟根（``include_root=False`` 时省略）；
    - 分享模式（``anchor_id`` 为文件夹）：首元素为锚点本身，不含其上级；
    - 节点不存在或不在锚点子树内：返回空列表，从不抛异常。
    """
    if is_top_level(node_id):
        if not is_top_level(anchor_id):
            return []
        return [virtual_root(root_name)] if include_root else []

    chain = ancestors(nodes, node_id)
    if chain is None:
        return []
    lineage = list(reversed(chain)) + [nodes[node_id]]

    if is_top_level(anchor_id):
        return ([virtual_root(root_name)] if include_root else []) + lineage

    for index, node in enumerate(lineage):
        if node.id == anchor_id:
            return lineage[index:]
    return []


def segments_to(nodes: Snapshot, node_id: Optional[str], *, anchor_id: Optional[str] = None) -> Optional[list[str]]:
    """``resolve_path`` 的逆运算：锚点以下到 ``node_id`` 的名称序列（未编码）。"""
    if node_id == anchor_id or (is_top_level(node_id) and is_top_level(anchor_id)):
        return []
    lineage = path_to(nodes, node_id, anchor_id=anchor_id, include_root=True)
    if not lineage:
        return None
    return [node.name for node in lineage[1:]]


def breadcrumbs(
    nodes: Snapshot,
    node_id: Optional[str],
    *,
    anchor_id: Optional[str] = None,
    root_name: str = DEFAULT_DATAROOM_NAME,
) -> list[Breadcrumb]:
    """生成面包屑；`path` 为相对锚点、逐段 URL 编码后的路径，锚点自身为 `/`。"""
    lineage = path_to(nodes, node_id, anchor_id=anchor_id, include_root=True, root_name=root_name)
    crumbs: list[Breadcrumb] = []
    segments: list[str] = []
    for index, node in enumerate(lineage):
        if index > 0:
            segments.append(quote(node.name, safe=""))
        crumbs.append(Breadcrumb(id=node.id, name=node.name, path="/" + "/".join(segments)))
    return crumbs


# ----------------------------
# 路径解析
# ----------------------------
def split_path(path: Optional[str]) -> list[str]:
    """按 `/` 切分导航路径并丢弃空段；各段保持编码形式，由解析时解码。"""
    return [segment for segment in (path or "").split("/") if segment]


def resolve_path(nodes: Snapshot, segments: Sequence[str], start_id: Optional[str] = None) -> Optional[Any]:
    """从 ``start_id``（顶层或分享锚点）出发逐段解析文件夹。

    每段先 URL 解码，再在当前文件夹的子文件夹中按名称（不区分大小写）匹配；
    任意一段失败立即返回 ``None``，不做部分匹配。空序列返回起点本身，
    起点为顶层时返回合成的虚拟根。
    """
    if is_top_level(start_id):
        current: Any = virtual_root()
    else:
        current = nodes.get(start_id)
        if current is None or not is_folder(current):
            return None

    for segment in segments:
        decoded = unquote(segment)
        if not decoded.strip():
            return None
        child = find_child_by_name(nodes, current.id, decoded, folders_only=True)
        if child is None:
            return None
        current = child
    return current


# ----------------------------
# 子树
# ----------------------------
def descendants(nodes: Snapshot, node_id: Optional[str]) -> list:
    """广度优先返回 ``node_id`` 的全部后代（不含自身）；重复访问会被忽略。"""
    index = children_index(nodes)
    start = normalize_parent(node_id)
    queue = deque(index.get(start, []))
    seen: set[str] = set() if start is None else {start}
    result: list = []
    while queue:
        child_id = queue.popleft()
        if child_id in seen:
            continue
        seen.add(child_id)
        result.append(nodes[child_id])
        queue.extend(index.get(child_id, []))
    return result


def subtree_ids(nodes: Snapshot, node_id: str) -> set[str]:
    """节点自身与全部后代的 id 集合。"""
    ids = {node.id for node in descendants(nodes, node_id)}
    if node_id in nodes:
        ids.add(node_id)
    return ids


def visible_nodes(nodes: Snapshot, anchor_id: Optional[str]) -> list:
    """锚点子树（含锚点本身）内的全部节点，按快照原顺序返回。"""
    return [node for node in _persisted(nodes) if is_ancestor(nodes, anchor_id, node.id)]
