"""File tree schemas: unified folder/file nodes and link overviews."""
import uuid
from datetime import datetime
from typing import Literal, Optional
from foldly.schemas.base import CamelModel, CamelORMModel

NodeType = Literal["folder", "file"]


class TreeNode(CamelModel):
    """In-memory node built from folder and file rows. Never persisted."""
    id: uuid.UUID
    name: str
    type: NodeType
    parent_id: Optional[uuid.UUID] = None
    path: str = "/"
    children: Optional[list["TreeNode"]] = None  # folders only
    size: Optional[int] = None
    mime_type: Optional[str] = None
    metadata: Optional[dict] = None

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"


class LinkWithFileTree(CamelORMModel):
    id: uuid.UUID
    user_id: uuid.UUID
    workspace_id: uuid.UUID
    slug: str
    topic: Optional[str] = None
    link_type: str
    title: str
    description: Optional[str] = None
    source_folder_id: Optional[uuid.UUID] = None
    is_active: bool = True
    max_files: int = 100
    max_file_size: int = 104857600
    expires_at: Optional[datetime] = None
    branding: Optional[dict] = None  # filled with {"enabled": False} when unset
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    file_tree: list[TreeNode] = []
    total_files: int = 0
    total_size: int = 0
