"""Cloud storage request schemas."""
from typing import Optional
from pydantic import Field
from foldly.schemas.base import CamelModel
from foldly.services.cloud.types import ProviderId


class CreateFolderRequest(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    parent_id: Optional[str] = None


class MoveFileRequest(CamelModel):
    new_parent_id: str


class TransferCreate(CamelModel):
    source_provider: ProviderId
    target_provider: ProviderId
    file_ids: list[str] = Field(min_length=1)
    target_folder_id: Optional[str] = None
