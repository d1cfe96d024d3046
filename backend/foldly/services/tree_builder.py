"""Flat-to-tree reconstruction for folder and file rows.

Pure functions: callers fetch the rows, these only arrange them.
"""
from typing import Callable, Iterable, Mapping, Optional
import uuid

from foldly.schemas.tree import TreeNode


def build_folder_path(folder_name: str, parent_path: Optional[str]) -> str:
    """Materialized path for a folder placed under `parent_path` (None = root)."""
    if not parent_path or parent_path == "/":
        return f"/{folder_name}"
    return f"{parent_path.rstrip('/')}/{folder_name}"


def path_depth(path: str) -> int:
    """Depth of a materialized path. '/A' is 0, '/A/B' is 1."""
    return max(len([p for p in path.split("/") if p]) - 1, 0)


def _file_metadata(file, batch) -> dict:
    metadata = {"uploaded_at": file.uploaded_at}
    if batch is not None:
        if batch.uploader_name:
            metadata["uploader_name"] = batch.uploader_name
        if batch.uploader_email:
            metadata["uploader_email"] = batch.uploader_email
    return metadata


def build_file_tree(
    folders: Iterable,
    files: Iterable,
    exclude_parent_id: Optional[uuid.UUID] = None,
    batches: Optional[Mapping[uuid.UUID, object]] = None,
) -> list[TreeNode]:
    """Build a sorted forest from flat folder and file rows.

    Folders are mapped before files so a file can take its parent's path.
    A node whose parent is missing from the input, or is `exclude_parent_id`,
    becomes a root. Nothing is dropped.
    """
    node_map: dict[uuid.UUID, TreeNode] = {}
    batches = batches or {}

    for folder in folders:
        node_map[folder.id] = TreeNode(
            id=folder.id,
            name=folder.name,
            type="folder",
            parent_id=folder.parent_folder_id,
            path=folder.path,
            children=[],
        )

    for file in files:
        parent = node_map.get(file.folder_id) if file.folder_id else None
        prefix = f"{parent.path.rstrip('/')}/" if parent is not None else "/"
        node_map[file.id] = TreeNode(
            id=file.id,
            name=file.file_name,
            type="file",
            parent_id=file.folder_id,
            path=f"{prefix}{file.file_name}",
            size=file.file_size,
            mime_type=file.mime_type,
            metadata=_file_metadata(file, batches.get(file.batch_id) if file.batch_id else None),
        )

    roots: list[TreeNode] = []
    for node in node_map.values():
        parent = None
        if node.parent_id is not None and node.parent_id != exclude_parent_id:
            parent = node_map.get(node.parent_id)
        if parent is not None and parent.children is not None:
            parent.children.append(node)
        else:
            roots.append(node)

    sort_nodes(roots)
    return roots


def _sort_key(node: TreeNode):
    return (0 if node.type == "folder" else 1, node.name.casefold(), node.name)


def sort_nodes(nodes: list[TreeNode]) -> None:
    """Sort in place, recursively: folders first, then by name."""
    nodes.sort(key=_sort_key)
    for node in nodes:
        if node.children:
            sort_nodes(node.children)


def calculate_node_stats(node: TreeNode, callback: Callable[[int, int], None]) -> None:
    """Depth-first walk calling callback(1, size) for every file under `node`."""
    if node.type == "file":
        callback(1, node.size or 0)
    for child in node.children or []:
        calculate_node_stats(child, callback)


def count_nodes(nodes: Iterable[TreeNode]) -> int:
    return sum(1 + count_nodes(node.children or []) for node in nodes)
