"""Workspace API - copy link files into the user's workspace."""
import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.database import get_db
from foldly.dependencies import get_copy_service, get_current_user_id
from foldly.schemas.copy import CopyFilesRequest, CopyResult, CopyTreeRequest
from foldly.services.errors import CopyError, ErrorCode
from foldly.services.link_files_copy import LinkFilesCopyService

router = APIRouter(prefix="/api/workspaces", tags=["workspaces"])

COPY_ERROR_STATUS = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.QUOTA_EXCEEDED: 413,
    ErrorCode.DATABASE_ERROR: 500,
}


def _copy_http_error(e: CopyError) -> HTTPException:
    return HTTPException(
        status_code=COPY_ERROR_STATUS.get(e.code, 500),
        detail={"code": e.code.value, "message": e.message},
    )


@router.post("/{workspace_id}/copy-tree", response_model=CopyResult)
async def copy_tree(
    workspace_id: uuid.UUID,
    body: CopyTreeRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: LinkFilesCopyService = Depends(get_copy_service),
):
    """Copy selected link folders and files, keeping their hierarchy."""
    try:
        return await service.copy_tree_nodes_to_workspace(
            db, body.nodes, body.target_folder_id, user_id, workspace_id, body.options,
        )
    except CopyError as e:
        raise _copy_http_error(e)


@router.post("/{workspace_id}/copy-files", response_model=CopyResult)
async def copy_files(
    workspace_id: uuid.UUID,
    body: CopyFilesRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: LinkFilesCopyService = Depends(get_copy_service),
):
    """Copy individual link files into one workspace folder."""
    try:
        return await service.copy_files_to_workspace(
            db, body.file_ids, body.target_folder_id, user_id, workspace_id,
        )
    except CopyError as e:
        raise _copy_http_error(e)
