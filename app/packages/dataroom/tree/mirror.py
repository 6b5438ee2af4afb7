"""客户端树镜像：把接口返回的扁平节点列表重建为带 children 索引的单根树。

- 所有者模式：合成虚拟根 `root`（名称形如 "Data Room (alice@example.com)"），
  顶层节点的 parent_id 改挂到 `root` 下；
- 分享模式：以分享锚点文件夹作为本地根，不再额外包一层虚拟根，
  锚点子树之外的节点在加载时直接丢弃。

每次加载都整体重建节点映射与 children 索引，从不做增量修改。
选中状态与展开状态是独立的 UI 状态，按节点 id 存放，不影响树结构。
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Sequence, Union
from urllib.parse import quote

from app.packages.dataroom.core.constants import DEFAULT_DATAROOM_NAME, VIRTUAL_ROOT_ID
from app.packages.dataroom.core.logger import logger
from app.packages.dataroom.tree import resolver
from app.packages.dataroom.tree.resolver import Breadcrumb
from app.packages.dataroom.tree.snapshot import TreeNode, virtual_root

NodeInput = Union[TreeNode, Mapping[str, Any], Any]


def owner_root_name(label: Optional[str]) -> str:
    """虚拟根的展示名称：有账号标识时附在括号内。"""
    return f"{DEFAULT_DATAROOM_NAME} ({label})" if label else DEFAULT_DATAROOM_NAME


def _to_tree_node(item: NodeInput) -> TreeNode:
    if isinstance(item, TreeNode):
        return TreeNode(
            id=item.id,
            name=item.name,
            type=item.type,
            parent_id=item.parent_id,
            dataroom_id=item.dataroom_id,
            size=item.size,
            mime_type=item.mime_type,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )
    if isinstance(item, Mapping):
        return TreeNode.from_payload(item)
    return TreeNode.from_record(item)


class DataroomMirror:
    """单个数据室（或一个分享范围）的内存镜像。"""

    def __init__(self, anchor_id: Optional[str] = None) -> None:
        # anchor_id 为空表示所有者模式或整库分享
        self.anchor_id: Optional[str] = None if resolver.is_top_level(anchor_id) else anchor_id
        self.root_name: str = DEFAULT_DATAROOM_NAME
        self.nodes: dict[str, TreeNode] = {}
        self.current_folder_id: str = self.root_id
        self.breadcrumbs: list[Breadcrumb] = []
        self.selected_node_ids: list[str] = []
        self.expanded_folders: dict[str, bool] = {self.root_id: True}
        self.search_query: str = ""
        self.search_results: list[str] = []
        self.error: Optional[str] = None

    @property
    def root_id(self) -> str:
        return self.anchor_id or VIRTUAL_ROOT_ID

    # ----------------------------
    # 加载
    # ----------------------------
    def load(self, items: Iterable[NodeInput], *, root_name: str = DEFAULT_DATAROOM_NAME) -> None:
        """整体重建镜像，并尽量保留当前所在文件夹与仍然存在的选中项。"""
        previous_folder = self.current_folder_id
        self.root_name = root_name

        nodes: dict[str, TreeNode] = {}
        if self.anchor_id is None:
            nodes[VIRTUAL_ROOT_ID] = virtual_root(root_name)
        for item in items:
            node = _to_tree_node(item)
            if resolver.is_top_level(node.parent_id):
                node.parent_id = VIRTUAL_ROOT_ID
            nodes[node.id] = node

        if self.anchor_id is not None:
            if self.anchor_id not in nodes:
                logger.warning("Share anchor %s missing from loaded nodes", self.anchor_id)
            nodes = {node.id: node for node in resolver.visible_nodes(nodes, self.anchor_id)}

        for parent_id, child_ids in resolver.children_index(nodes).items():
            parent = nodes.get(parent_id if parent_id is not None else VIRTUAL_ROOT_ID)
            if parent is not None and parent.is_folder:
                parent.children = child_ids

        self.nodes = nodes
        current = nodes.get(previous_folder)
        self.current_folder_id = current.id if current is not None and current.is_folder else self.root_id
        self.selected_node_ids = [node_id for node_id in self.selected_node_ids if node_id in nodes]
        self.expanded_folders = {
            folder_id: expanded
            for folder_id, expanded in self.expanded_folders.items()
            if folder_id in nodes or folder_id == self.root_id
        }
        self.expanded_folders.setdefault(self.root_id, True)
        self.breadcrumbs = self.get_node_path(self.current_folder_id)
        if self.search_query:
            self.search(self.search_query)
        self.error = None

    # ----------------------------
    # 查询
    # ----------------------------
    def get(self, node_id: Optional[str]) -> Optional[TreeNode]:
        return self.nodes.get(node_id if node_id is not None else self.root_id)

    @property
    def current_folder(self) -> Optional[TreeNode]:
        return self.nodes.get(self.current_folder_id)

    def children_of(self, parent_id: Optional[str]) -> list[TreeNode]:
        target = self.root_id if parent_id is None else parent_id
        if self.anchor_id is not None and target == VIRTUAL_ROOT_ID:
            target = self.anchor_id
        return resolver.children_of(self.nodes, target)

    def current_children(self) -> list[TreeNode]:
        return self.children_of(self.current_folder_id)

    def get_node_path(self, node_id: Optional[str]) -> list[Breadcrumb]:
        """从本地根到 ``node_id`` 的面包屑，根的 path 为 `/`。"""
        target = self.root_id if node_id is None else node_id
        if target == VIRTUAL_ROOT_ID and self.anchor_id is not None:
            target = self.anchor_id
        return resolver.breadcrumbs(self.nodes, target, anchor_id=self.anchor_id, root_name=self.root_name)

    def segments_for(self, folder_id: Optional[str]) -> list[str]:
        """生成文件夹相对本地根的 URL 路径段（已逐段编码）。"""
        segments = resolver.segments_to(self.nodes, folder_id, anchor_id=self.anchor_id)
        return [quote(segment, safe="") for segment in segments or []]

    def folder_by_path(self, segments: Union[str, Sequence[str], None]) -> Optional[TreeNode]:
        if isinstance(segments, str) or segments is None:
            segments = resolver.split_path(segments)
        folder = resolver.resolve_path(self.nodes, segments, start_id=self.anchor_id)
        if folder is None:
            return None
        # 顶层解析结果是合成根，这里换成镜像自己的根（带展示名称与 children）
        return self.nodes.get(folder.id)

    # ----------------------------
    # 导航
    # ----------------------------
    def navigate_to_folder(self, folder_id: Optional[str]) -> bool:
        folder = self.get(folder_id)
        if folder is None or not folder.is_folder:
            self.error = "Folder not found"
            return False
        self.current_folder_id = folder.id
        self.breadcrumbs = self.get_node_path(folder.id)
        self.selected_node_ids = []
        self.error = None
        return True

    def navigate_to_path(self, segments: Union[str, Sequence[str], None]) -> Optional[TreeNode]:
        """按路径导航；路径无法解析时回到本地根。"""
        folder = self.folder_by_path(segments)
        if folder is None:
            logger.debug("Path %r not found in mirror, falling back to root", segments)
            self.navigate_to_folder(self.root_id)
        else:
            self.navigate_to_folder(folder.id)
        return self.current_folder

    # ----------------------------
    # 选中
    # ----------------------------
    def select_node(self, node_id: str) -> None:
        """切换单个节点的选中状态。"""
        if node_id in self.selected_node_ids:
            self.selected_node_ids = [item for item in self.selected_node_ids if item != node_id]
        elif node_id in self.nodes and node_id != self.root_id:
            self.selected_node_ids = [*self.selected_node_ids, node_id]

    def select_multiple(self, node_ids: Iterable[str]) -> None:
        self.selected_node_ids = [
            node_id for node_id in dict.fromkeys(node_ids) if node_id in self.nodes and node_id != self.root_id
        ]

    def clear_selection(self) -> None:
        self.selected_node_ids = []

    def is_selected(self, node_id: str) -> bool:
        return node_id in self.selected_node_ids

    # ----------------------------
    # 展开
    # ----------------------------
    def toggle_folder_expansion(self, folder_id: str) -> None:
        self.expanded_folders[folder_id] = not self.expanded_folders.get(folder_id, False)

    def set_folder_expanded(self, folder_id: str, expanded: bool) -> None:
        self.expanded_folders[folder_id] = expanded

    def is_folder_expanded(self, folder_id: str) -> bool:
        return self.expanded_folders.get(folder_id, False)

    # ----------------------------
    # 搜索
    # ----------------------------
    def search(self, query: Optional[str]) -> list[TreeNode]:
        """按名称子串（不区分大小写）搜索，空查询清空结果。"""
        needle = (query or "").strip().casefold()
        if not needle:
            self.search_query = ""
            self.search_results = []
            return []
        matches = resolver.sort_nodes(
            node for node in self.nodes.values() if node.id != VIRTUAL_ROOT_ID and needle in node.name.casefold()
        )
        self.search_query = query or ""
        self.search_results = [node.id for node in matches]
        return matches
