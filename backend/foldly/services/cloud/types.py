"""Shared types for the cloud storage clients."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Literal, Optional, TypeVar

from foldly.schemas.base import CamelModel
from foldly.services.errors import ErrorCode

ProviderId = Literal["google-drive", "onedrive"]

T = TypeVar("T")


class CloudFile(CamelModel):
    """A file or folder as reported by a provider."""

    id: str
    name: str
    mime_type: str
    size: int = 0
    modified_time: str
    created_time: str
    parents: Optional[list[str]] = None
    web_view_link: Optional[str] = None
    download_url: Optional[str] = None
    thumbnail_link: Optional[str] = None
    is_folder: bool = False
    provider: ProviderId


@dataclass
class CloudError:
    code: ErrorCode
    message: str


@dataclass
class Result(Generic[T]):
    """Outcome of a provider call. Provider methods never raise."""

    success: bool
    data: Optional[T] = None
    error: Optional[CloudError] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: ErrorCode, message: str) -> "Result[T]":
        return cls(success=False, error=CloudError(code=code, message=message))


@dataclass
class UploadableFile:
    name: str
    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


class CloudProviderApi(ABC):
    """The capability set every storage provider implements."""

    provider_id: ProviderId

    @abstractmethod
    async def get_files(self, folder_id: Optional[str] = None) -> Result[list[CloudFile]]:
        """Direct children of ``folder_id``, or every file reachable from the root when omitted."""

    @abstractmethod
    async def get_file(self, file_id: str) -> Result[CloudFile]:
        ...

    @abstractmethod
    async def download_file(self, file_id: str) -> Result[bytes]:
        ...

    @abstractmethod
    async def upload_file(self, file: UploadableFile, folder_id: Optional[str] = None) -> Result[CloudFile]:
        ...

    @abstractmethod
    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> Result[CloudFile]:
        ...

    @abstractmethod
    async def delete_file(self, file_id: str) -> Result[None]:
        ...

    @abstractmethod
    async def move_file(self, file_id: str, new_parent_id: str) -> Result[CloudFile]:
        ...

    @abstractmethod
    async def search_files(self, query: str) -> Result[list[CloudFile]]:
        ...
