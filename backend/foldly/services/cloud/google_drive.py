"""Google Drive v3 client."""
import logging
from typing import Optional

import aiohttp

from foldly.config import settings
from foldly.services.cloud.base import BaseCloudProvider, utc_now_iso
from foldly.services.cloud.types import CloudFile, Result, UploadableFile

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = (
    "id,name,mimeType,size,modifiedTime,createdTime,parents,"
    "webViewLink,webContentLink,thumbnailLink"
)
PAGE_SIZE = 1000
SEARCH_PAGE_SIZE = 100


def _quote_term(value: str) -> str:
    """Escape a value for use inside a single-quoted Drive query term."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveProvider(BaseCloudProvider):
    provider_id = "google-drive"

    def __init__(
        self, access_token: str,
        base_url: Optional[str] = None,
        upload_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(access_token, base_url or settings.GOOGLE_DRIVE_API_BASE, **kwargs)
        self.upload_url = (upload_url or settings.GOOGLE_DRIVE_UPLOAD_BASE).rstrip("/")

    def _map_file(self, item: dict) -> CloudFile:
        mime_type = item.get("mimeType") or "application/octet-stream"
        return CloudFile(
            id=item["id"],
            name=item.get("name", ""),
            mime_type=mime_type,
            # Drive reports size as a decimal string, and not at all for folders
            size=int(item.get("size") or 0),
            modified_time=item.get("modifiedTime") or utc_now_iso(),
            created_time=item.get("createdTime") or utc_now_iso(),
            parents=item.get("parents"),
            web_view_link=item.get("webViewLink"),
            download_url=item.get("webContentLink"),
            thumbnail_link=item.get("thumbnailLink"),
            is_folder=mime_type == FOLDER_MIME_TYPE,
            provider=self.provider_id,
        )

    async def _query_files(self, q: str, page_size: int = PAGE_SIZE) -> Result[list[CloudFile]]:
        files: list[CloudFile] = []
        page_token = None
        while True:
            params = {
                "q": q,
                "fields": f"nextPageToken,files({FILE_FIELDS})",
                "pageSize": str(page_size),
            }
            if page_token:
                params["pageToken"] = page_token
            result = await self.make_request(f"{self.base_url}/files", params=params)
            if not result.success:
                return result
            files.extend(self._map_file(item) for item in result.data.get("files", []))
            page_token = result.data.get("nextPageToken")
            if not page_token:
                return Result.ok(files)

    async def _list_children(self, folder_id: Optional[str]) -> Result[list[CloudFile]]:
        parent = _quote_term(folder_id or "root")
        return await self._query_files(f"'{parent}' in parents and trashed = false")

    async def get_file(self, file_id: str) -> Result[CloudFile]:
        result = await self.make_request(
            f"{self.base_url}/files/{file_id}", params={"fields": FILE_FIELDS},
        )
        if not result.success:
            return result
        return Result.ok(self._map_file(result.data))

    async def download_file(self, file_id: str) -> Result[bytes]:
        return await self.make_request(
            f"{self.base_url}/files/{file_id}",
            params={"alt": "media"},
            response_type="bytes",
        )

    async def upload_file(self, file: UploadableFile, folder_id: Optional[str] = None) -> Result[CloudFile]:
        metadata = {"name": file.name, "mimeType": file.mime_type}
        if folder_id:
            metadata["parents"] = [folder_id]

        with aiohttp.MultipartWriter("related") as writer:
            writer.append_json(metadata)
            writer.append(file.data, {"Content-Type": file.mime_type})

        result = await self.make_request(
            f"{self.upload_url}/files",
            method="POST",
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            data=writer,
        )
        if not result.success:
            return result
        logger.info(f"Uploaded {file.name} ({file.size} bytes) to Google Drive")
        return Result.ok(self._map_file(result.data))

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> Result[CloudFile]:
        body = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            body["parents"] = [parent_id]
        result = await self.make_request(
            f"{self.base_url}/files",
            method="POST",
            params={"fields": FILE_FIELDS},
            json_body=body,
        )
        if not result.success:
            return result
        return Result.ok(self._map_file(result.data))

    async def delete_file(self, file_id: str) -> Result[None]:
        return await self.make_request(
            f"{self.base_url}/files/{file_id}", method="DELETE", response_type="none",
        )

    async def move_file(self, file_id: str, new_parent_id: str) -> Result[CloudFile]:
        current = await self.make_request(
            f"{self.base_url}/files/{file_id}", params={"fields": "parents"},
        )
        if not current.success:
            return current

        params = {"addParents": new_parent_id, "fields": FILE_FIELDS}
        old_parents = current.data.get("parents") or []
        if old_parents:
            params["removeParents"] = ",".join(old_parents)

        result = await self.make_request(
            f"{self.base_url}/files/{file_id}",
            method="PATCH",
            params=params,
            json_body={},
        )
        if not result.success:
            return result
        return Result.ok(self._map_file(result.data))

    async def search_files(self, query: str) -> Result[list[CloudFile]]:
        q = f"name contains '{_quote_term(query)}' and trashed = false"
        return await self._query_files(q, page_size=SEARCH_PAGE_SIZE)
