"""Sequential file transfer between two storage providers.

Files are handled one at a time: fetch metadata, download from the source,
upload to the target. The first failure aborts the whole transfer; files
already uploaded stay where they are.
"""
import inspect
import logging
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Awaitable, Callable, Literal, Optional, Union

from foldly.services.cloud.types import CloudError, CloudProviderApi, Result, UploadableFile

logger = logging.getLogger(__name__)

TransferStatus = Literal["pending", "downloading", "uploading", "completed", "failed"]


@dataclass
class TransferProgress:
    id: str
    status: TransferStatus = "pending"
    total_files: int = 0
    completed_files: int = 0
    current_file: Optional[str] = None
    error: Optional[str] = None
    progress: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TransferRequest:
    file_ids: list[str]
    target_folder_id: Optional[str] = None


ProgressCallback = Callable[[TransferProgress], Union[None, Awaitable[None]]]


class TransferFailedError(Exception):
    """A transfer stopped on a provider error. Carries the ``CloudError``."""

    def __init__(self, error: CloudError):
        self.error = error
        super().__init__(error.message)


class CloudTransferManager:

    def __init__(
        self, source: CloudProviderApi, target: CloudProviderApi,
        transfer_id: Optional[str] = None,
    ):
        self.source = source
        self.target = target
        self._progress = TransferProgress(id=transfer_id or str(uuid.uuid4()))
        self._callbacks: list[ProgressCallback] = []

    def on_progress(self, callback: ProgressCallback) -> ProgressCallback:
        """Register a listener. Sync and async callables are both accepted."""
        self._callbacks.append(callback)
        return callback

    def get_progress(self) -> TransferProgress:
        return replace(self._progress)

    async def _emit(self, **changes) -> None:
        for key, value in changes.items():
            setattr(self._progress, key, value)
        if "progress" not in changes and self._progress.total_files:
            self._progress.progress = round(
                self._progress.completed_files / self._progress.total_files * 100
            )

        snapshot = self.get_progress()
        for callback in self._callbacks:
            outcome = callback(snapshot)
            if inspect.isawaitable(outcome):
                await outcome

    async def _fail(self, error: CloudError, file_id: str) -> Result[None]:
        logger.error(
            f"Transfer {self._progress.id} failed on {file_id}: {error.code.value}: {error.message}"
        )
        await self._emit(status="failed", error=error.message)
        return Result(success=False, error=error)

    async def _advance(self) -> None:
        await self._emit(completed_files=self._progress.completed_files + 1)

    async def transfer(self, request: TransferRequest) -> Result[None]:
        total = len(request.file_ids)
        logger.info(
            f"Transfer {self._progress.id}: {total} file(s) "
            f"{self.source.provider_id} -> {self.target.provider_id}"
        )
        await self._emit(
            status="pending", total_files=total, completed_files=0,
            current_file=None, error=None, progress=0,
        )

        for file_id in request.file_ids:
            meta = await self.source.get_file(file_id)
            if not meta.success:
                return await self._fail(meta.error, file_id)
            cloud_file = meta.data

            if cloud_file.is_folder:
                logger.info(f"Transfer {self._progress.id}: skipping folder {cloud_file.name}")
                self._progress.current_file = cloud_file.name
                await self._advance()
                continue

            await self._emit(status="downloading", current_file=cloud_file.name)
            downloaded = await self.source.download_file(file_id)
            if not downloaded.success:
                return await self._fail(downloaded.error, file_id)

            await self._emit(status="uploading")
            uploaded = await self.target.upload_file(
                UploadableFile(
                    name=cloud_file.name,
                    data=downloaded.data,
                    mime_type=cloud_file.mime_type or "application/octet-stream",
                ),
                request.target_folder_id,
            )
            if not uploaded.success:
                return await self._fail(uploaded.error, file_id)

            await self._advance()

        await self._emit(status="completed", current_file=None, progress=100)
        logger.info(f"Transfer {self._progress.id} completed")
        return Result.ok(None)
