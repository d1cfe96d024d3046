"""HTTP plumbing shared by the cloud storage clients.

Every request goes through ``make_request``, which turns HTTP and transport
failures into a failed ``Result`` instead of raising. Clients support async
context manager for connection pooling and fall back to a per-call session
when used without ``async with``.
"""
import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from foldly.config import settings
from foldly.services.cloud.types import CloudFile, CloudProviderApi, Result
from foldly.services.errors import ErrorCode

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    401: ErrorCode.AUTH_FAILED,
    403: ErrorCode.PERMISSION_DENIED,
    507: ErrorCode.QUOTA_EXCEEDED,
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _extract_error_message(body: str) -> str:
    """Pull ``error.message`` out of a Drive/Graph error body, else return the raw text."""
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip()[:500]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return payload.get("error_description") or error
    return body.strip()[:500]


class BaseCloudProvider(CloudProviderApi):
    """Bearer-token HTTP client with uniform error mapping."""

    def __init__(
        self, access_token: str, base_url: str,
        timeout: Optional[float] = None,
        max_folders: Optional[int] = None,
    ):
        if not access_token:
            raise ValueError(f"No access token for {self.provider_id}.")
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else settings.CLOUD_REQUEST_TIMEOUT,
        )
        self.max_folders = settings.CLOUD_LIST_MAX_FOLDERS if max_folders is None else max_folders

    async def open(self) -> None:
        """Open a persistent session for connection pooling."""
        if not self._session:
            self._session = aiohttp.ClientSession()

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "BaseCloudProvider":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def make_request(
        self, url: str, method: str = "GET",
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
        json_body: Any = None,
        data: Any = None,
        authenticated: bool = True,
        response_type: str = "json",
    ) -> Result:
        """Send one request. ``response_type`` is ``json``, ``bytes`` or ``none``."""
        request_headers = dict(headers or {})
        if authenticated:
            request_headers["Authorization"] = f"Bearer {self.access_token}"
        kwargs = {"params": params, "headers": request_headers, "json": json_body, "data": data}
        if json_body is None:
            kwargs.pop("json")
        if data is None:
            kwargs.pop("data")

        try:
            if self._session:
                return await self._send(self._session, method, url, response_type, kwargs)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, method, url, response_type, kwargs)
        except asyncio.TimeoutError:
            logger.warning(f"{self.provider_id} {method} {url} timed out")
            return Result.fail(ErrorCode.NETWORK_ERROR, f"Request timed out: {method} {url}")
        except aiohttp.ClientError as e:
            logger.warning(f"{self.provider_id} {method} {url} failed: {e}")
            return Result.fail(ErrorCode.NETWORK_ERROR, str(e) or type(e).__name__)
        except ValueError as e:
            logger.warning(f"{self.provider_id} {method} {url} returned invalid JSON: {e}")
            return Result.fail(ErrorCode.UNKNOWN, f"Invalid response from {self.provider_id}: {e}")

    async def _send(
        self, session: aiohttp.ClientSession, method: str, url: str,
        response_type: str, kwargs: dict,
    ) -> Result:
        async with session.request(method, url, timeout=self._timeout, **kwargs) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text()
                return self.handle_error_response(resp.status, body)
            if response_type == "bytes":
                return Result.ok(await resp.read())
            if response_type == "none" or resp.status == 204:
                return Result.ok(None)
            return Result.ok(await resp.json(content_type=None))

    def handle_error_response(self, status: int, body: str = "") -> Result:
        code = ERROR_STATUS_CODES.get(status, ErrorCode.UNKNOWN)
        message = _extract_error_message(body) or f"{self.provider_id} request failed"
        if code == ErrorCode.UNKNOWN:
            message = f"HTTP {status}: {message}"
        logger.info(f"{self.provider_id} error {status} -> {code.value}")
        return Result.fail(code, message)

    async def _list_children(self, folder_id: Optional[str]) -> Result[list[CloudFile]]:
        """Every direct child of ``folder_id``; ``None`` is the drive root."""
        raise NotImplementedError

    async def _list_all_files(self) -> Result[list[CloudFile]]:
        """Breadth-first walk from the root, visiting each folder at most once."""
        root = await self._list_children(None)
        if not root.success:
            return root

        all_files: list[CloudFile] = list(root.data)
        visited: set[str] = set()
        queue = deque(f.id for f in root.data if f.is_folder)

        while queue:
            folder_id = queue.popleft()
            if folder_id in visited:
                continue
            if self.max_folders and len(visited) >= self.max_folders:
                logger.warning(
                    f"{self.provider_id}: listing truncated after {self.max_folders} folders "
                    f"({len(queue) + 1} not visited)"
                )
                break
            visited.add(folder_id)

            result = await self._list_children(folder_id)
            if not result.success:
                logger.warning(
                    f"{self.provider_id}: skipping folder {folder_id}: {result.error.message}"
                )
                continue
            all_files.extend(result.data)
            queue.extend(f.id for f in result.data if f.is_folder and f.id not in visited)

        return Result.ok(all_files)

    async def get_files(self, folder_id: Optional[str] = None) -> Result[list[CloudFile]]:
        if folder_id:
            return await self._list_children(folder_id)
        return await self._list_all_files()
