"""Links API - the user's links with their received files."""
import uuid
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.database import get_db
from foldly.dependencies import get_copy_service, get_current_user_id, get_tree_service
from foldly.schemas.copy import TotalSizeRequest, TotalSizeResponse
from foldly.schemas.tree import LinkWithFileTree
from foldly.services.errors import CopyError
from foldly.services.link_files_copy import LinkFilesCopyService
from foldly.services.link_files_tree import LinkFilesTreeService

router = APIRouter(prefix="/api/links", tags=["links"])


@router.get("", response_model=list[LinkWithFileTree])
async def list_links_with_files(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: LinkFilesTreeService = Depends(get_tree_service),
):
    """Every link the user owns, each with its file tree and totals."""
    try:
        return await service.get_links_with_files(db, user_id)
    except CopyError as e:
        raise HTTPException(status_code=500, detail={"code": e.code.value, "message": e.message})


@router.post("/files/total-size", response_model=TotalSizeResponse)
async def files_total_size(
    body: TotalSizeRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: LinkFilesCopyService = Depends(get_copy_service),
):
    """Combined size of the selected files the user received, for quota previews."""
    total = await service.get_files_total_size(db, body.file_ids, user_id)
    return TotalSizeResponse(total_size=total)
