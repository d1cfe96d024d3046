"""Async SQLAlchemy engine and session factory.

Routes take a session through `get_db`; the copy engine opens its own
transaction on it with `async with db.begin()`, so nothing here commits:

    @router.post("/{workspace_id}/copy-files")
    async def copy_files(workspace_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
        return await copy_service.copy_files_to_workspace(db, ...)

The job worker uses `async_session` directly for its short-lived updates.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from foldly.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
