"""Request/response schemas for copying link files into a workspace."""
import uuid
from typing import Optional
from foldly.schemas.base import CamelModel
from foldly.schemas.tree import TreeNode


class CopyOptions(CamelModel):
    # False: drop folders and place every selected file in the target folder
    preserve_structure: bool = True


class CopyTreeRequest(CamelModel):
    nodes: list[TreeNode]
    target_folder_id: Optional[uuid.UUID] = None
    options: Optional[CopyOptions] = None


class CopyFilesRequest(CamelModel):
    file_ids: list[uuid.UUID]
    target_folder_id: Optional[uuid.UUID] = None


class CopyItemError(CamelModel):
    file_id: uuid.UUID
    file_name: str
    code: str
    error: str


class CopyResult(CamelModel):
    success: bool
    copied_files: int = 0
    copied_folders: int = 0
    errors: list[CopyItemError] = []
    total_size: int = 0


class TotalSizeRequest(CamelModel):
    file_ids: list[uuid.UUID]


class TotalSizeResponse(CamelModel):
    total_size: int
