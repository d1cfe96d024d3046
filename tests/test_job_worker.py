"""Tests for the background job worker and the cloud-transfer handler."""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from foldly import dependencies
from foldly.models import Job
from foldly.services import job_worker
from foldly.services.cloud.tokens import CloudTokenProvider
from foldly.services.cloud.types import CloudFile, Result
from foldly.services.errors import ErrorCode


class StaticTokens(CloudTokenProvider):
    def __init__(self, tokens):
        self.tokens = tokens

    async def get_token(self, user_id, provider):
        return self.tokens.get(provider)


def cloud_file(file_id):
    return CloudFile(
        id=file_id, name=f"{file_id}.txt", mime_type="text/plain", size=1,
        modified_time="2024-05-01T00:00:00Z", created_time="2024-05-01T00:00:00Z",
        provider="google-drive",
    )


def fake_provider(provider_id, download=None):
    client = MagicMock()
    client.provider_id = provider_id
    client.__aenter__.return_value = client
    client.get_file = AsyncMock(side_effect=lambda file_id: Result.ok(cloud_file(file_id)))
    client.download_file = AsyncMock(side_effect=download or (lambda file_id: Result.ok(b"x")))
    client.upload_file = AsyncMock(side_effect=lambda f, folder_id: Result.ok(cloud_file(f.name)))
    return client


@pytest.fixture
def worker_db(monkeypatch, session_factory):
    monkeypatch.setattr(job_worker, "async_session", session_factory)
    monkeypatch.setattr(
        dependencies, "token_provider",
        StaticTokens({"google-drive": "g-token", "onedrive": "o-token"}),
    )
    return session_factory


@pytest.fixture
def providers(monkeypatch):
    built = {
        "google-drive": fake_provider("google-drive"),
        "onedrive": fake_provider("onedrive"),
    }
    monkeypatch.setattr(job_worker, "create_cloud_provider", lambda provider_id, token: built[provider_id])
    return built


async def queue_job(session_factory, user, job_type="cloud-transfer", **params):
    job = Job(
        id=uuid.uuid4(),
        user_id=user.id,
        job_type=job_type,
        status="queued",
        params={
            "user_id": str(user.id),
            "source_provider": "google-drive",
            "target_provider": "onedrive",
            "file_ids": ["a", "b"],
            "target_folder_id": "dest",
            **params,
        },
    )
    async with session_factory() as session:
        session.add(job)
        await session.commit()
    return job.id


async def load_job(session_factory, job_id) -> Job:
    async with session_factory() as session:
        return await session.get(Job, job_id)


async def test_empty_queue(worker_db):
    assert await job_worker.run_next_job() is False


async def test_transfer_job_completes(rows, worker_db, providers):
    user = await rows.user()
    job_id = await queue_job(worker_db, user)

    assert await job_worker.run_next_job() is True

    job = await load_job(worker_db, job_id)
    assert job.status == "completed"
    assert job.result == {"transfer_id": str(job_id), "total_files": 2, "completed_files": 2}
    assert job.progress["transfer"]["status"] == "completed"
    assert job.progress["transfer"]["progress"] == 100
    assert job.started_at is not None
    assert providers["onedrive"].upload_file.await_count == 2
    assert providers["onedrive"].upload_file.await_args_list[0].args[1] == "dest"


async def test_failed_transfer_marks_job_failed(rows, worker_db, providers):
    providers["google-drive"].download_file.side_effect = (
        lambda file_id: Result.fail(ErrorCode.PERMISSION_DENIED, "The user does not have access")
    )
    user = await rows.user()
    job_id = await queue_job(worker_db, user)

    await job_worker.run_next_job()

    job = await load_job(worker_db, job_id)
    assert job.status == "failed"
    assert job.error_message == "The user does not have access"
    assert job.progress["transfer"]["status"] == "failed"


async def test_missing_token_fails_job(rows, worker_db, providers, monkeypatch):
    monkeypatch.setattr(dependencies, "token_provider", StaticTokens({"google-drive": "g-token"}))
    user = await rows.user()
    job_id = await queue_job(worker_db, user)

    await job_worker.run_next_job()

    job = await load_job(worker_db, job_id)
    assert job.status == "failed"
    assert "onedrive is not connected" in job.error_message
    providers["google-drive"].get_file.assert_not_awaited()


async def test_cancelled_job_stops_between_files(rows, worker_db, providers):
    user = await rows.user()
    job_id = await queue_job(worker_db, user, file_ids=["a", "b", "c"])

    async def download_then_cancel(file_id):
        async with worker_db() as session:
            job = await session.get(Job, job_id)
            job.status = "cancelled"
            await session.commit()
        job_worker.mark_job_cancelled(job_id)
        return Result.ok(b"x")

    providers["google-drive"].download_file.side_effect = download_then_cancel

    await job_worker.run_next_job()

    job = await load_job(worker_db, job_id)
    assert job.status == "cancelled"
    assert providers["onedrive"].upload_file.await_count == 0
    assert str(job_id) not in job_worker._cancelled_jobs


async def test_unknown_job_type_fails(rows, worker_db):
    user = await rows.user()
    job_id = await queue_job(worker_db, user, job_type="reindex")

    await job_worker.run_next_job()

    job = await load_job(worker_db, job_id)
    assert job.status == "failed"
    assert job.error_message == "Unknown job type: reindex"


async def test_oldest_job_runs_first(rows, worker_db, providers):
    user = await rows.user()
    first = await queue_job(worker_db, user)
    async with worker_db() as session:
        job = await session.get(Job, first)
        job.created_at = datetime(2020, 1, 1, tzinfo=timezone.utc)
        await session.commit()
    second = await queue_job(worker_db, user)

    await job_worker.run_next_job()

    assert (await load_job(worker_db, first)).status == "completed"
    assert (await load_job(worker_db, second)).status == "queued"


async def test_recover_stale_jobs(rows, worker_db):
    user = await rows.user()
    stale = await queue_job(worker_db, user)
    fresh = await queue_job(worker_db, user)
    async with worker_db() as session:
        for job_id, started in ((stale, timedelta(hours=2)), (fresh, timedelta(minutes=1))):
            job = await session.get(Job, job_id)
            job.status = "running"
            job.started_at = datetime.now(timezone.utc) - started
        await session.commit()

    await job_worker.recover_stale_jobs()

    assert (await load_job(worker_db, stale)).status == "failed"
    assert (await load_job(worker_db, fresh)).status == "running"


async def test_is_job_cancelled_falls_back_to_database(rows, worker_db, monkeypatch):
    monkeypatch.setattr(job_worker, "_CANCEL_CHECK_INTERVAL", 0.0)
    user = await rows.user()
    job_id = await queue_job(worker_db, user)

    assert await job_worker.is_job_cancelled(job_id) is False

    async with worker_db() as session:
        job = await session.get(Job, job_id)
        job.status = "cancelled"
        await session.commit()

    assert await job_worker.is_job_cancelled(job_id) is True
    job_worker._cleanup_cancelled_job(job_id)


def test_safe_error_message_falls_back_to_class_name():
    assert job_worker.safe_error_message(TimeoutError()) == "TimeoutError: Job interrupted"
    assert job_worker.safe_error_message(ValueError(" boom ")) == "boom"
