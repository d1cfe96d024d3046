"""OneDrive client on Microsoft Graph."""
import logging
from typing import Optional
from urllib.parse import quote

from foldly.config import settings
from foldly.services.cloud.base import BaseCloudProvider, utc_now_iso
from foldly.services.cloud.types import CloudFile, Result, UploadableFile
from foldly.services.errors import ErrorCode

logger = logging.getLogger(__name__)

# Graph has no folder MIME type; items with a ``folder`` facet get this one
FOLDER_MIME_TYPE = "application/vnd.ms-folder"
DOWNLOAD_URL_KEY = "@microsoft.graph.downloadUrl"
PAGE_SIZE = 1000


class OneDriveProvider(BaseCloudProvider):
    provider_id = "onedrive"

    def __init__(
        self, access_token: str,
        base_url: Optional[str] = None,
        simple_upload_limit: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(access_token, base_url or settings.MICROSOFT_GRAPH_API_BASE, **kwargs)
        self.simple_upload_limit = (
            settings.ONEDRIVE_SIMPLE_UPLOAD_LIMIT if simple_upload_limit is None
            else simple_upload_limit
        )

    @property
    def drive_url(self) -> str:
        return f"{self.base_url}/me/drive"

    def _item_url(self, item_id: str) -> str:
        return f"{self.drive_url}/items/{item_id}"

    def _map_item(self, item: dict) -> CloudFile:
        parent_id = (item.get("parentReference") or {}).get("id")
        return CloudFile(
            id=item["id"],
            name=item.get("name", ""),
            mime_type=(item.get("file") or {}).get("mimeType") or FOLDER_MIME_TYPE,
            size=item.get("size") or 0,
            modified_time=item.get("lastModifiedDateTime") or utc_now_iso(),
            created_time=item.get("createdDateTime") or utc_now_iso(),
            parents=[parent_id] if parent_id else None,
            web_view_link=item.get("webUrl"),
            download_url=item.get(DOWNLOAD_URL_KEY),
            is_folder="folder" in item,
            provider=self.provider_id,
        )

    async def _collect_pages(self, url: str, params: Optional[dict] = None) -> Result[list[CloudFile]]:
        items: list[CloudFile] = []
        next_url: Optional[str] = url
        while next_url:
            result = await self.make_request(next_url, params=params)
            if not result.success:
                return result
            items.extend(self._map_item(item) for item in result.data.get("value", []))
            # nextLink already carries the query string
            next_url = result.data.get("@odata.nextLink")
            params = None
        return Result.ok(items)

    async def _list_children(self, folder_id: Optional[str]) -> Result[list[CloudFile]]:
        url = f"{self._item_url(folder_id)}/children" if folder_id else f"{self.drive_url}/root/children"
        return await self._collect_pages(url, params={"$top": str(PAGE_SIZE)})

    async def get_file(self, file_id: str) -> Result[CloudFile]:
        result = await self.make_request(self._item_url(file_id))
        if not result.success:
            return result
        return Result.ok(self._map_item(result.data))

    async def download_file(self, file_id: str) -> Result[bytes]:
        meta = await self.make_request(self._item_url(file_id))
        if not meta.success:
            return meta

        download_url = meta.data.get(DOWNLOAD_URL_KEY)
        if not download_url:
            return Result.fail(ErrorCode.UNKNOWN, "Download URL not available")

        # Pre-authenticated URL; sending the bearer token is rejected by the CDN
        return await self.make_request(download_url, authenticated=False, response_type="bytes")

    async def upload_file(self, file: UploadableFile, folder_id: Optional[str] = None) -> Result[CloudFile]:
        if file.size > self.simple_upload_limit:
            logger.warning(
                f"{file.name} is {file.size} bytes, over the {self.simple_upload_limit} byte simple upload limit"
            )
            return Result.fail(ErrorCode.UNKNOWN, "Large file upload not implemented")

        name = quote(file.name, safe="")
        if folder_id:
            url = f"{self._item_url(folder_id)}:/{name}:/content"
        else:
            url = f"{self.drive_url}/root:/{name}:/content"

        result = await self.make_request(
            url,
            method="PUT",
            headers={"Content-Type": file.mime_type},
            data=file.data,
        )
        if not result.success:
            return result
        logger.info(f"Uploaded {file.name} ({file.size} bytes) to OneDrive")
        return Result.ok(self._map_item(result.data))

    async def create_folder(self, name: str, parent_id: Optional[str] = None) -> Result[CloudFile]:
        url = f"{self._item_url(parent_id)}/children" if parent_id else f"{self.drive_url}/root/children"
        result = await self.make_request(
            url,
            method="POST",
            json_body={
                "name": name,
                "folder": {},
                "@microsoft.graph.conflictBehavior": "rename",
            },
        )
        if not result.success:
            return result
        return Result.ok(self._map_item(result.data))

    async def delete_file(self, file_id: str) -> Result[None]:
        return await self.make_request(self._item_url(file_id), method="DELETE", response_type="none")

    async def move_file(self, file_id: str, new_parent_id: str) -> Result[CloudFile]:
        result = await self.make_request(
            self._item_url(file_id),
            method="PATCH",
            json_body={"parentReference": {"id": new_parent_id}},
        )
        if not result.success:
            return result
        return Result.ok(self._map_item(result.data))

    async def search_files(self, query: str) -> Result[list[CloudFile]]:
        # OData string literal: single quotes are doubled
        term = quote(query.replace("'", "''"), safe="")
        return await self._collect_pages(f"{self.drive_url}/root/search(q='{term}')")
