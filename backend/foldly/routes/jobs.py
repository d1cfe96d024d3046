"""Jobs API - list, check status, cancel background jobs."""
import uuid
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.database import get_db
from foldly.dependencies import get_current_user_id
from foldly.models.job import Job
from foldly.schemas.job import JobResponse
from foldly.services.job_worker import mark_job_cancelled

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


async def _get_user_job(db: AsyncSession, job_id: uuid.UUID, user_id: uuid.UUID) -> Job:
    job = await db.get(Job, job_id)
    if not job or job.user_id != user_id:
        raise HTTPException(404, "Job not found")
    return job


@router.get("", response_model=list[JobResponse])
async def list_jobs(
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """List the user's jobs, optionally filtered by status."""
    query = (
        select(Job)
        .where(Job.user_id == user_id)
        .order_by(desc(Job.created_at))
        .limit(limit)
        .offset(offset)
    )
    if status:
        query = query.where(Job.status == status)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get job status and progress."""
    return await _get_user_job(db, job_id, user_id)


@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a queued or running job."""
    job = await _get_user_job(db, job_id, user_id)
    if job.status in ("completed", "failed"):
        raise HTTPException(400, f"Cannot cancel job in '{job.status}' state")
    if job.status != "cancelled":
        job.status = "cancelled"
        job.completed_at = datetime.now(timezone.utc)
        await db.commit()
    mark_job_cancelled(job_id)
    return {"id": str(job_id), "status": "cancelled"}
