"""Cloud storage API - browse and manage files on connected providers."""
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, Form, HTTPException, Query, UploadFile, File as FastAPIFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.database import get_db
from foldly.dependencies import get_cloud_provider, get_current_user_id
from foldly.models.job import Job
from foldly.schemas.cloud import CreateFolderRequest, MoveFileRequest, TransferCreate
from foldly.schemas.job import JobResponse
from foldly.services.cloud import BaseCloudProvider
from foldly.services.cloud.types import CloudFile, Result, UploadableFile
from foldly.services.errors import ErrorCode

router = APIRouter(prefix="/api/cloud", tags=["cloud"])

CLOUD_ERROR_STATUS = {
    ErrorCode.AUTH_FAILED: 401,
    ErrorCode.PERMISSION_DENIED: 403,
    ErrorCode.QUOTA_EXCEEDED: 507,
    ErrorCode.NETWORK_ERROR: 502,
    ErrorCode.UNKNOWN: 502,
}


def _unwrap(result: Result):
    """Return the payload of a successful call or raise the mapped HTTP error."""
    if result.success:
        return result.data
    raise HTTPException(
        status_code=CLOUD_ERROR_STATUS.get(result.error.code, 502),
        detail={"code": result.error.code.value, "message": result.error.message},
    )


@router.post("/transfers", response_model=JobResponse, status_code=201)
async def create_transfer(
    body: TransferCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Queue a provider-to-provider transfer as a background job."""
    job = Job(
        user_id=user_id,
        job_type="cloud-transfer",
        params={
            "user_id": str(user_id),
            "source_provider": body.source_provider,
            "target_provider": body.target_provider,
            "file_ids": body.file_ids,
            "target_folder_id": body.target_folder_id,
        },
        progress={"current": 0, "total": len(body.file_ids), "message": "Queued"},
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


@router.get("/{provider}/files", response_model=list[CloudFile])
async def list_files(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    client: BaseCloudProvider = Depends(get_cloud_provider),
):
    """Children of a folder, or the whole drive when no folder is given."""
    return _unwrap(await client.get_files(folder_id))


@router.get("/{provider}/search", response_model=list[CloudFile])
async def search_files(
    q: str = Query(..., min_length=1),
    client: BaseCloudProvider = Depends(get_cloud_provider),
):
    return _unwrap(await client.search_files(q))


@router.get("/{provider}/files/{file_id}", response_model=CloudFile)
async def get_file(file_id: str, client: BaseCloudProvider = Depends(get_cloud_provider)):
    return _unwrap(await client.get_file(file_id))


@router.get("/{provider}/files/{file_id}/download")
async def download_file(file_id: str, client: BaseCloudProvider = Depends(get_cloud_provider)):
    """Stream the file's bytes back with its original name."""
    meta = _unwrap(await client.get_file(file_id))
    content = _unwrap(await client.download_file(file_id))
    return Response(
        content=content,
        media_type=meta.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{meta.name}"'},
    )


@router.post("/{provider}/files", response_model=CloudFile, status_code=201)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    folder_id: Optional[str] = Form(None, alias="folderId"),
    client: BaseCloudProvider = Depends(get_cloud_provider),
):
    contents = await file.read()
    upload = UploadableFile(
        name=file.filename or "unnamed",
        data=contents,
        mime_type=file.content_type or "application/octet-stream",
    )
    return _unwrap(await client.upload_file(upload, folder_id))


@router.post("/{provider}/folders", response_model=CloudFile, status_code=201)
async def create_folder(body: CreateFolderRequest, client: BaseCloudProvider = Depends(get_cloud_provider)):
    return _unwrap(await client.create_folder(body.name, body.parent_id))


@router.delete("/{provider}/files/{file_id}", status_code=204)
async def delete_file(file_id: str, client: BaseCloudProvider = Depends(get_cloud_provider)):
    _unwrap(await client.delete_file(file_id))
    return Response(status_code=204)


@router.post("/{provider}/files/{file_id}/move", response_model=CloudFile)
async def move_file(
    file_id: str,
    body: MoveFileRequest,
    client: BaseCloudProvider = Depends(get_cloud_provider),
):
    return _unwrap(await client.move_file(file_id, body.new_parent_id))
