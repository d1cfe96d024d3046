"""Link overviews: each of a user's links with its file tree and totals."""
import logging
import uuid

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.models.batch import Batch
from foldly.models.file_record import FileRecord
from foldly.models.folder import Folder
from foldly.models.link import Link
from foldly.schemas.tree import LinkWithFileTree
from foldly.services.errors import CopyError, ErrorCode
from foldly.services.tree_builder import build_file_tree

logger = logging.getLogger(__name__)


def descendant_folders(all_folders: list[Folder], root_id: uuid.UUID) -> list[Folder]:
    """Folders below `root_id` (the root itself excluded), found breadth-first."""
    children: dict[uuid.UUID, list[Folder]] = {}
    for folder in all_folders:
        if folder.parent_folder_id is not None:
            children.setdefault(folder.parent_folder_id, []).append(folder)

    found: list[Folder] = []
    seen = {root_id}
    queue = [root_id]
    while queue:
        current = queue.pop(0)
        for child in children.get(current, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            found.append(child)
            queue.append(child.id)
    return found


class LinkFilesTreeService:
    """Read-only aggregation of links, their folders and files."""

    async def get_links_with_files(self, db: AsyncSession, user_id: uuid.UUID) -> list[LinkWithFileTree]:
        try:
            result = await db.execute(
                select(Link).where(Link.user_id == user_id).order_by(Link.created_at)
            )
            links = result.scalars().all()
            return [await self._link_with_tree(db, link) for link in links]
        except SQLAlchemyError as e:
            logger.error(f"Error fetching links with files for user {user_id}: {e}")
            raise CopyError(ErrorCode.DATABASE_ERROR, "Failed to fetch links with files") from e

    async def _link_with_tree(self, db: AsyncSession, link: Link) -> LinkWithFileTree:
        if link.link_type == "generated":
            folders, files = await self._generated_link_contents(db, link)
            exclude_parent_id = link.source_folder_id
        else:
            folders, files = await self._owned_link_contents(db, link)
            exclude_parent_id = None

        batch_ids = {f.batch_id for f in files if f.batch_id}
        batches = {}
        if batch_ids:
            batch_result = await db.execute(select(Batch).where(Batch.id.in_(batch_ids)))
            batches = {b.id: b for b in batch_result.scalars().all()}

        file_tree = build_file_tree(folders, files, exclude_parent_id, batches)

        response = LinkWithFileTree.model_validate(link)
        response.branding = link.branding or {"enabled": False}
        response.file_tree = file_tree
        response.total_files = len(files)
        response.total_size = sum(f.file_size for f in files)

        if link.link_type == "generated":
            logger.debug(
                f"Generated link {link.id} tree: {len(folders)} folder(s), "
                f"{len(files)} file(s), {len(file_tree)} root node(s)"
            )
        return response

    async def _owned_link_contents(self, db: AsyncSession, link: Link):
        folder_result = await db.execute(select(Folder).where(Folder.link_id == link.id))
        file_result = await db.execute(select(FileRecord).where(FileRecord.link_id == link.id))
        return list(folder_result.scalars().all()), list(file_result.scalars().all())

    async def _generated_link_contents(self, db: AsyncSession, link: Link):
        """Workspace subtree under the source folder plus files uploaded through the link."""
        if link.source_folder_id is None:
            folders: list[Folder] = []
        else:
            workspace_folders = await db.execute(
                select(Folder).where(Folder.workspace_id == link.workspace_id)
            )
            folders = descendant_folders(list(workspace_folders.scalars().all()), link.source_folder_id)

        folder_ids = {f.id for f in folders}
        if link.source_folder_id is not None:
            folder_ids.add(link.source_folder_id)

        uploaded = select(FileRecord.id).join(Batch, FileRecord.batch_id == Batch.id).where(
            Batch.link_id == link.id
        )
        conditions = [FileRecord.id.in_(uploaded)]
        if folder_ids:
            conditions.append(
                (FileRecord.workspace_id == link.workspace_id) & FileRecord.folder_id.in_(folder_ids)
            )
        file_result = await db.execute(select(FileRecord).where(or_(*conditions)))
        # One row per file even when both conditions match
        files = list({f.id: f for f in file_result.scalars().all()}.values())
        return folders, files
