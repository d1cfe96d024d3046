"""Copy link inbox files and folders into a user's workspace.

Every public operation runs in one transaction on the session it is given:
folders, files and the storage counter are committed together or not at all.
The session must not have a transaction open when the call starts.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from foldly.models.file_record import FileRecord
from foldly.models.folder import Folder
from foldly.models.link import Link
from foldly.models.workspace import Workspace
from foldly.schemas.copy import CopyItemError, CopyOptions, CopyResult
from foldly.schemas.tree import TreeNode
from foldly.services.errors import CopyError, ErrorCode, QuotaExceededError
from foldly.services.storage_quota import StorageQuotaService
from foldly.services.tree_builder import build_folder_path, path_depth

logger = logging.getLogger(__name__)

# Content columns carried over to the workspace copy
_COPIED_FILE_FIELDS = (
    "file_name", "original_name", "file_size", "mime_type", "extension",
    "storage_path", "storage_provider", "checksum",
    "is_safe", "virus_scan_result", "processing_status", "thumbnail_path",
    "uploaded_at",
)


@dataclass
class _CopyState:
    """Accumulators shared by the recursive folder and file passes."""
    # source folder id -> new workspace folder id
    folder_mapping: dict[uuid.UUID, uuid.UUID] = field(default_factory=dict)
    # new workspace folder id -> materialized path
    folder_paths: dict[uuid.UUID, str] = field(default_factory=dict)
    copied_sources: set[uuid.UUID] = field(default_factory=set)
    errors: list[CopyItemError] = field(default_factory=list)
    copied_files: int = 0
    copied_folders: int = 0
    total_size: int = 0

    def add_error(self, file_id: uuid.UUID, file_name: str, code: ErrorCode, message: str) -> None:
        self.errors.append(CopyItemError(file_id=file_id, file_name=file_name, code=code.value, error=message))

    def to_result(self) -> CopyResult:
        return CopyResult(
            success=not self.errors,
            copied_files=self.copied_files,
            copied_folders=self.copied_folders,
            errors=self.errors,
            total_size=self.total_size,
        )


def _iter_file_nodes(nodes: Iterable[TreeNode]) -> Iterator[TreeNode]:
    for node in nodes:
        if node.type == "file":
            yield node
        if node.children:
            yield from _iter_file_nodes(node.children)


def _iter_descendants(node: TreeNode) -> Iterator[TreeNode]:
    for child in node.children or []:
        yield child
        yield from _iter_descendants(child)


def _top_level_nodes(nodes: list[TreeNode]) -> list[TreeNode]:
    """Selected nodes not already inside another selected node, folders first, shallowest first."""
    nested = {d.id for node in nodes for d in _iter_descendants(node)}
    roots = [node for node in nodes if node.id not in nested]
    return sorted(roots, key=lambda n: (0 if n.type == "folder" else 1, path_depth(n.path)))


def _clone_file(
    source: FileRecord,
    *,
    user_id: uuid.UUID,
    workspace_id: uuid.UUID,
    folder_id: Optional[uuid.UUID],
) -> FileRecord:
    return FileRecord(
        id=uuid.uuid4(),
        user_id=user_id,
        workspace_id=workspace_id,
        folder_id=folder_id,
        link_id=None,
        batch_id=None,
        copied_from_file_id=source.id,
        **{name: getattr(source, name) for name in _COPIED_FILE_FIELDS},
    )


class LinkFilesCopyService:
    """Copies link files (optionally whole folder subtrees) into a workspace."""

    def __init__(self, quota_service: StorageQuotaService):
        self.quota_service = quota_service

    async def get_files_total_size(
        self,
        db: AsyncSession,
        file_ids: Iterable[uuid.UUID],
        user_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Sum of stored sizes for the given file ids. Unknown ids count as 0.

        With `user_id`, only files received through that user's links count.
        """
        ids = list(set(file_ids))
        if not ids:
            return 0
        query = select(func.coalesce(func.sum(FileRecord.file_size), 0)).where(FileRecord.id.in_(ids))
        if user_id is not None:
            query = query.join(Link, FileRecord.link_id == Link.id).where(Link.user_id == user_id)
        result = await db.execute(query)
        return int(result.scalar_one())

    async def copy_tree_nodes_to_workspace(
        self,
        db: AsyncSession,
        nodes: list[TreeNode],
        target_folder_id: Optional[uuid.UUID],
        user_id: uuid.UUID,
        workspace_id: uuid.UUID,
        options: Optional[CopyOptions] = None,
    ) -> CopyResult:
        """Copy selected tree nodes into `workspace_id`, preserving hierarchy.

        Folders are created before any file so files can resolve their new
        parent through the source -> new folder mapping. Per-file ownership
        and not-found failures are collected in `errors`; quota and database
        failures roll everything back and raise CopyError.
        """
        options = options or CopyOptions()
        state = _CopyState()
        logger.info(
            f"Copying {len(nodes)} selected node(s) to workspace {workspace_id} "
            f"(target folder {target_folder_id}) for user {user_id}"
        )

        try:
            async with db.begin():
                target_path = await self._resolve_target(db, user_id, workspace_id, target_folder_id)
                await self._precheck_quota(
                    db, user_id, [node.id for node in _iter_file_nodes(nodes)]
                )
                owned_link_ids = await self._owned_link_ids(db, user_id)

                # Folders first: file placement depends on the new folder ids
                ordered = _top_level_nodes(nodes)
                if options.preserve_structure:
                    for node in ordered:
                        if node.type == "folder":
                            parent_id, parent_path = self._placement(
                                node, target_folder_id, target_path, state,
                            )
                            await self._create_folder_in_workspace(
                                db, node, parent_id, parent_path,
                                user_id, workspace_id, state,
                            )

                for node in ordered:
                    folder_id = target_folder_id
                    if options.preserve_structure:
                        folder_id, _ = self._placement(node, target_folder_id, target_path, state)
                    await self._copy_node_to_workspace(
                        db, node, folder_id, user_id, workspace_id,
                        owned_link_ids, state, options.preserve_structure,
                    )

                await db.flush()
                await self.quota_service.update_user_storage_usage(db, user_id, state.total_size)
        except CopyError as e:
            logger.warning(f"Copy to workspace {workspace_id} aborted: {e}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database error copying tree nodes to workspace {workspace_id}: {e}")
            raise CopyError(ErrorCode.DATABASE_ERROR, "Failed to copy tree nodes to workspace") from e

        logger.info(
            f"Copied {state.copied_files} file(s) and {state.copied_folders} folder(s) "
            f"({state.total_size} bytes) to workspace {workspace_id}; {len(state.errors)} error(s)"
        )
        return state.to_result()

    async def copy_files_to_workspace(
        self,
        db: AsyncSession,
        file_ids: list[uuid.UUID],
        target_folder_id: Optional[uuid.UUID],
        user_id: uuid.UUID,
        workspace_id: uuid.UUID,
    ) -> CopyResult:
        """Flat copy: every authorized file lands directly in the target folder."""
        state = _CopyState()
        logger.info(f"Copying {len(file_ids)} file(s) to workspace {workspace_id} for user {user_id}")

        try:
            async with db.begin():
                await self._resolve_target(db, user_id, workspace_id, target_folder_id)
                await self._precheck_quota(db, user_id, file_ids)
                owned_link_ids = await self._owned_link_ids(db, user_id)

                result = await db.execute(select(FileRecord).where(FileRecord.id.in_(set(file_ids))))
                sources = {f.id: f for f in result.scalars().all()}

                for file_id in file_ids:
                    if file_id in state.copied_sources:
                        continue
                    source = sources.get(file_id)
                    if source is None:
                        state.add_error(file_id, "", ErrorCode.NOT_FOUND, "Source file not found")
                        continue
                    if source.link_id is None or source.link_id not in owned_link_ids:
                        state.add_error(
                            source.id, source.file_name, ErrorCode.UNAUTHORIZED,
                            "Unauthorized access to file",
                        )
                        continue
                    db.add(_clone_file(
                        source, user_id=user_id, workspace_id=workspace_id, folder_id=target_folder_id,
                    ))
                    state.copied_sources.add(source.id)
                    state.copied_files += 1
                    state.total_size += source.file_size

                await db.flush()
                await self.quota_service.update_user_storage_usage(db, user_id, state.total_size)
        except CopyError as e:
            logger.warning(f"Copy to workspace {workspace_id} aborted: {e}")
            raise
        except SQLAlchemyError as e:
            logger.error(f"Database error copying files to workspace {workspace_id}: {e}")
            raise CopyError(ErrorCode.DATABASE_ERROR, "Failed to copy files to workspace") from e

        logger.info(
            f"Copied {state.copied_files} file(s) ({state.total_size} bytes) to workspace "
            f"{workspace_id}; {len(state.errors)} error(s)"
        )
        return state.to_result()

    # ── Internals ────────────────────────────────────────────────

    async def _resolve_target(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        workspace_id: uuid.UUID,
        target_folder_id: Optional[uuid.UUID],
    ) -> Optional[str]:
        """Validate the destination and return the target folder's path (None = root)."""
        workspace = await db.get(Workspace, workspace_id)
        if not workspace or workspace.user_id != user_id:
            raise CopyError(ErrorCode.NOT_FOUND, f"Workspace {workspace_id} not found")
        if target_folder_id is None:
            return None
        folder = await db.get(Folder, target_folder_id)
        if not folder or folder.workspace_id != workspace_id:
            raise CopyError(ErrorCode.NOT_FOUND, f"Target folder {target_folder_id} not found in workspace")
        return folder.path

    async def _precheck_quota(self, db: AsyncSession, user_id: uuid.UUID, file_ids: Iterable[uuid.UUID]) -> None:
        # Sizes come from the stored rows of owned files, not from the client-supplied tree
        selected_size = await self.get_files_total_size(db, file_ids, user_id)
        check = await self.quota_service.check_user_quota(db, user_id, selected_size)
        if not check.allowed:
            raise QuotaExceededError(check.message or "Storage limit exceeded")

    async def _owned_link_ids(self, db: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await db.execute(select(Link.id).where(Link.user_id == user_id))
        return set(result.scalars().all())

    @staticmethod
    def _placement(
        node: TreeNode,
        target_folder_id: Optional[uuid.UUID],
        target_path: Optional[str],
        state: _CopyState,
    ) -> tuple[Optional[uuid.UUID], Optional[str]]:
        """Destination for a top-level node: its copied parent when that parent was selected, else the target."""
        if node.parent_id is not None and node.parent_id in state.folder_mapping:
            parent_folder_id = state.folder_mapping[node.parent_id]
            return parent_folder_id, state.folder_paths[parent_folder_id]
        return target_folder_id, target_path

    async def _create_folder_in_workspace(
        self,
        db: AsyncSession,
        folder_node: TreeNode,
        parent_folder_id: Optional[uuid.UUID],
        parent_path: Optional[str],
        user_id: uuid.UUID,
        workspace_id: uuid.UUID,
        state: _CopyState,
    ) -> None:
        """Create `folder_node` under `parent_folder_id`, then its descendant folders under it."""
        if folder_node.id in state.folder_mapping:
            return

        new_folder_id = uuid.uuid4()
        path = build_folder_path(folder_node.name, parent_path)
        db.add(Folder(
            id=new_folder_id,
            user_id=user_id,
            workspace_id=workspace_id,
            link_id=None,
            parent_folder_id=parent_folder_id,
            name=folder_node.name,
            path=path,
            depth=path_depth(path),
            sort_order=0,
        ))
        # Flush so the parent row exists before any child references it
        await db.flush()

        state.folder_mapping[folder_node.id] = new_folder_id
        state.folder_paths[new_folder_id] = path
        state.copied_folders += 1

        for child in folder_node.children or []:
            if child.type == "folder":
                await self._create_folder_in_workspace(
                    db, child, new_folder_id, path, user_id, workspace_id, state,
                )

    async def _copy_node_to_workspace(
        self,
        db: AsyncSession,
        node: TreeNode,
        folder_id: Optional[uuid.UUID],
        user_id: uuid.UUID,
        workspace_id: uuid.UUID,
        owned_link_ids: set[uuid.UUID],
        state: _CopyState,
        preserve_structure: bool,
    ) -> None:
        """Copy file nodes in `node`'s subtree. `folder_id` is where `node` itself lands."""
        if node.type == "file" and node.id not in state.copied_sources:
            source = await db.get(FileRecord, node.id)
            if source is None:
                state.add_error(node.id, node.name, ErrorCode.NOT_FOUND, "Source file not found")
            elif source.link_id is None or source.link_id not in owned_link_ids:
                state.add_error(node.id, node.name, ErrorCode.UNAUTHORIZED, "Unauthorized access to file")
            else:
                db.add(_clone_file(source, user_id=user_id, workspace_id=workspace_id, folder_id=folder_id))
                state.copied_sources.add(source.id)
                state.copied_files += 1
                state.total_size += source.file_size

        child_folder_id = folder_id
        if preserve_structure and node.type == "folder":
            child_folder_id = state.folder_mapping.get(node.id, folder_id)
        for child in node.children or []:
            await self._copy_node_to_workspace(
                db, child, child_folder_id, user_id, workspace_id,
                owned_link_ids, state, preserve_structure,
            )
