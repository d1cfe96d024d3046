"""Background job worker.

Polls the jobs table for 'queued' jobs and processes them.
Runs as an asyncio task within the FastAPI process.
"""
import asyncio
import logging
import time
import traceback
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import and_, select

from foldly.database import async_session
from foldly.models.job import Job
from foldly.services.cloud import create_cloud_provider
from foldly.services.cloud.transfer import (
    CloudTransferManager, TransferFailedError, TransferProgress, TransferRequest,
)

logger = logging.getLogger(__name__)

# ── In-memory cancel cache ───────────────────────────────────────
# mark_job_cancelled() is called by the cancel route AFTER commit.
# is_job_cancelled() checks this set first, DB fallback every 10s.
_cancelled_jobs: set[str] = set()
_cancel_check_times: dict[str, float] = {}
_CANCEL_CHECK_INTERVAL = 10.0  # seconds between DB fallback checks

POLL_INTERVAL = 5.0


async def recover_stale_jobs(stale_minutes: int = 15):
    """Mark jobs stuck in 'running' for longer than `stale_minutes` as failed.

    Call on startup to recover from process crashes that left jobs stranded.
    """
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=stale_minutes)
    async with async_session() as db:
        result = await db.execute(
            select(Job).where(
                and_(
                    Job.status == "running",
                    Job.started_at < cutoff,
                )
            )
        )
        stale_jobs = result.scalars().all()
        for job in stale_jobs:
            job.status = "failed"
            job.error_message = f"Recovered on startup: job was running for >{stale_minutes} minutes"
            job.completed_at = datetime.now(timezone.utc)
            logger.warning(f"Recovered stale job {job.id} (started at {job.started_at})")
        if stale_jobs:
            await db.commit()
            logger.info(f"Recovered {len(stale_jobs)} stale job(s)")


class JobCancelledError(Exception):
    """Raised when a job detects it has been cancelled (cooperative cancellation)."""
    pass


def safe_error_message(e: Exception, fallback: str = "Job interrupted") -> str:
    """Extract a meaningful error message from an exception.

    Some exceptions (timeouts, cancellation races) produce an empty str(e).
    This helper falls back to the exception class name.
    """
    msg = str(e).strip()
    if not msg:
        msg = f"{type(e).__name__}: {fallback}"
    return msg


# Job handler registry - add new job types here
JOB_HANDLERS = {}


def register_job_handler(job_type: str):
    """Decorator to register a job handler function."""
    def decorator(func):
        JOB_HANDLERS[job_type] = func
        return func
    return decorator


async def process_job(job_id, job_type: str, params: dict) -> dict:
    """Dispatch job to the appropriate handler."""
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return await handler(job_id, params)


async def update_job_progress(job_id, current: int, total: int, message: str = "", transfer: dict | None = None):
    """Update job progress (called from within handlers).

    Preserves the last transfer snapshot when a caller doesn't pass one.
    """
    async with async_session() as db:
        job = await db.get(Job, job_id)
        if job:
            new_progress = {"current": current, "total": total, "message": message}
            if transfer is not None:
                new_progress["transfer"] = transfer
            elif isinstance(job.progress, dict) and "transfer" in job.progress:
                new_progress["transfer"] = job.progress["transfer"]
            job.progress = new_progress
            await db.commit()


def mark_job_cancelled(job_id) -> None:
    """Mark a job as cancelled in the in-memory cache.

    Called by the cancel route AFTER the DB commit succeeds, so
    is_job_cancelled() returns True without a DB round-trip.
    """
    _cancelled_jobs.add(str(job_id))


def _cleanup_cancelled_job(job_id) -> None:
    """Remove a job from the cancel cache after it reaches a terminal state."""
    job_key = str(job_id)
    _cancelled_jobs.discard(job_key)
    _cancel_check_times.pop(job_key, None)


async def is_job_cancelled(job_id) -> bool:
    """Check if a job has been cancelled (cooperative cancellation).

    Memory-first: returns immediately if the cancel route has signalled.
    DB fallback: checks the database at most once every _CANCEL_CHECK_INTERVAL
    seconds to catch cancellations from other processes or missed signals.
    """
    job_key = str(job_id)
    if job_key in _cancelled_jobs:
        return True
    now = time.monotonic()
    last_check = _cancel_check_times.get(job_key, 0)
    if now - last_check < _CANCEL_CHECK_INTERVAL:
        return False
    _cancel_check_times[job_key] = now
    async with async_session() as db:
        job = await db.get(Job, job_id)
        if job is not None and job.status == "cancelled":
            _cancelled_jobs.add(job_key)
            return True
    return False


async def _mark_failed(job_id, error: Exception) -> None:
    # Retry up to 3 times so a transient DB error doesn't
    # leave the job stuck in "running" forever.
    for attempt in range(3):
        try:
            async with async_session() as db:
                job = await db.get(Job, job_id)
                if job and job.status not in ("completed", "cancelled"):
                    job.status = "failed"
                    job.error_message = safe_error_message(error)[:2000]
                    job.completed_at = datetime.now(timezone.utc)
                    await db.commit()
            return
        except Exception as db_err:
            logger.error(
                f"Failed to mark job {job_id} as failed "
                f"(attempt {attempt + 1}/3): {db_err}"
            )
            if attempt < 2:
                await asyncio.sleep(1)


async def run_next_job() -> bool:
    """Pick the oldest queued job and run it to a terminal state.

    Returns False when the queue was empty.
    """
    async with async_session() as db:
        result = await db.execute(
            select(Job)
            .where(Job.status == "queued")
            .order_by(Job.created_at)
            .limit(1)
        )
        job = result.scalar_one_or_none()
        if not job:
            return False

        logger.info(f"Processing job {job.id} (type={job.job_type})")
        job.status = "running"
        job.started_at = datetime.now(timezone.utc)
        await db.commit()

        try:
            result_data = await process_job(job.id, job.job_type, job.params)

            # Re-check: if job was cancelled during execution, don't overwrite
            await db.refresh(job)
            if job.status == "cancelled":
                logger.info(f"Job {job.id} was cancelled during execution, skipping completed update")
            else:
                job.status = "completed"
                job.result = result_data or {}
                job.completed_at = datetime.now(timezone.utc)
                done_progress = {"current": 1, "total": 1, "message": "Done"}
                if isinstance(job.progress, dict) and "transfer" in job.progress:
                    done_progress["transfer"] = job.progress["transfer"]
                job.progress = done_progress
                await db.commit()
                logger.info(f"Job {job.id} completed")

        except JobCancelledError:
            logger.info(f"Job {job.id} stopped after cancellation")

        except Exception as e:
            logger.error(f"Job {job.id} failed: {e}")
            logger.error(traceback.format_exc())
            await _mark_failed(job.id, e)

        _cleanup_cancelled_job(job.id)
        return True


async def worker_loop():
    """Main worker loop. Polls for queued jobs every POLL_INTERVAL seconds."""
    logger.info("Job worker started")
    while True:
        try:
            await run_next_job()
        except Exception as e:
            logger.error(f"Worker loop error: {e}")

        await asyncio.sleep(POLL_INTERVAL)


# ── Job Handlers ─────────────────────────────────────────────────

@register_job_handler("cloud-transfer")
async def handle_cloud_transfer(job_id, params: dict) -> dict:
    """Copy files from one cloud provider to another."""
    from foldly import dependencies

    user_id = UUID(params["user_id"])
    source_id = params["source_provider"]
    target_id = params["target_provider"]

    tokens = {}
    for provider_id in (source_id, target_id):
        token = await dependencies.token_provider.get_token(user_id, provider_id)
        if not token:
            raise ValueError(f"{provider_id} is not connected for this user")
        tokens[provider_id] = token

    async def on_progress(snapshot: TransferProgress):
        message = snapshot.current_file or snapshot.status
        await update_job_progress(
            job_id, snapshot.completed_files, snapshot.total_files, message,
            transfer=snapshot.to_dict(),
        )
        if await is_job_cancelled(job_id):
            raise JobCancelledError(f"Job {job_id} was cancelled")

    async with create_cloud_provider(source_id, tokens[source_id]) as source, \
            create_cloud_provider(target_id, tokens[target_id]) as target:
        manager = CloudTransferManager(source, target, transfer_id=str(job_id))
        manager.on_progress(on_progress)
        outcome = await manager.transfer(TransferRequest(
            file_ids=list(params.get("file_ids", [])),
            target_folder_id=params.get("target_folder_id"),
        ))

    if not outcome.success:
        raise TransferFailedError(outcome.error)

    final = manager.get_progress()
    return {
        "transfer_id": final.id,
        "total_files": final.total_files,
        "completed_files": final.completed_files,
    }
