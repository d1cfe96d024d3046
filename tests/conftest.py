"""Shared fixtures: in-memory database and row factories."""
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from foldly.models import Base, Batch, FileRecord, Folder, Link, User, Workspace
from foldly.services.tree_builder import build_folder_path, path_depth

GIB = 1024 * 1024 * 1024


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class RowFactory:
    """Creates rows in their own committed session.

    Every column the services read is set explicitly so the returned
    objects stay usable after their session is closed.
    """

    def __init__(self, sessions):
        self._sessions = sessions

    async def _save(self, obj):
        async with self._sessions() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def user(self, storage_used: int = 0, storage_limit: int = GIB) -> User:
        user_id = uuid.uuid4()
        return await self._save(User(
            id=user_id,
            email=f"{user_id.hex[:10]}@example.com",
            username=f"user-{user_id.hex[:10]}",
            subscription_tier="free",
            storage_used=storage_used,
            storage_limit=storage_limit,
        ))

    async def workspace(self, user: User) -> Workspace:
        return await self._save(Workspace(id=uuid.uuid4(), user_id=user.id, name="My Files"))

    async def link(
        self, user: User, workspace: Workspace, slug: str = "inbox",
        link_type: str = "base", source_folder: Folder | None = None,
        branding: dict | None = None,
    ) -> Link:
        return await self._save(Link(
            id=uuid.uuid4(),
            user_id=user.id,
            workspace_id=workspace.id,
            slug=slug,
            topic=None if link_type == "base" else slug,
            link_type=link_type,
            title=slug.title(),
            source_folder_id=source_folder.id if source_folder else None,
            branding=branding,
        ))

    async def folder(
        self, user: User, name: str, parent: Folder | None = None,
        link: Link | None = None, workspace: Workspace | None = None,
    ) -> Folder:
        path = build_folder_path(name, parent.path if parent else None)
        return await self._save(Folder(
            id=uuid.uuid4(),
            user_id=user.id,
            link_id=link.id if link else None,
            workspace_id=workspace.id if workspace else None,
            parent_folder_id=parent.id if parent else None,
            name=name,
            path=path,
            depth=path_depth(path),
        ))

    async def batch(self, user: User, link: Link, uploader_name: str = "Ada", uploader_email: str | None = None) -> Batch:
        return await self._save(Batch(
            id=uuid.uuid4(),
            link_id=link.id,
            user_id=user.id,
            folder_id=None,
            uploader_name=uploader_name,
            uploader_email=uploader_email,
        ))

    async def file(
        self, user: User, name: str, size: int = 100,
        folder: Folder | None = None, link: Link | None = None,
        workspace: Workspace | None = None, batch: Batch | None = None,
        mime_type: str = "application/pdf",
    ) -> FileRecord:
        file_id = uuid.uuid4()
        return await self._save(FileRecord(
            id=file_id,
            user_id=user.id,
            link_id=link.id if link else None,
            workspace_id=workspace.id if workspace else None,
            batch_id=batch.id if batch else None,
            folder_id=folder.id if folder else None,
            copied_from_file_id=None,
            file_name=name,
            original_name=name,
            file_size=size,
            mime_type=mime_type,
            extension=name.rsplit(".", 1)[-1] if "." in name else None,
            storage_path=f"uploads/{file_id}/{name}",
            uploaded_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        ))


@pytest.fixture
def rows(session_factory):
    return RowFactory(session_factory)
