"""Tests for copying link files into a workspace."""
import uuid

import pytest
from sqlalchemy import select

from foldly.models import FileRecord, Folder, User
from foldly.schemas.copy import CopyOptions
from foldly.schemas.tree import TreeNode
from foldly.services.errors import CopyError, ErrorCode, QuotaExceededError
from foldly.services.link_files_copy import LinkFilesCopyService
from foldly.services.storage_quota import StorageQuotaService


def folder_node(folder, children=()):
    return TreeNode(
        id=folder.id, name=folder.name, type="folder",
        parent_id=folder.parent_folder_id, path=folder.path, children=list(children),
    )


def file_node(file):
    return TreeNode(
        id=file.id, name=file.file_name, type="file",
        parent_id=file.folder_id, size=file.file_size, mime_type=file.mime_type,
    )


@pytest.fixture
def service():
    return LinkFilesCopyService(StorageQuotaService())


@pytest.fixture
async def inbox(rows):
    """A user's link holding Root/A/B/file.txt plus a loose top-level file."""
    user = await rows.user()
    workspace = await rows.workspace(user)
    link = await rows.link(user, workspace)
    root = await rows.folder(user, "Root", link=link)
    a = await rows.folder(user, "A", parent=root, link=link)
    b = await rows.folder(user, "B", parent=a, link=link)
    deep = await rows.file(user, "file.txt", size=300, folder=b, link=link)
    in_a = await rows.file(user, "notes.txt", size=200, folder=a, link=link)
    loose = await rows.file(user, "loose.pdf", size=50, link=link)
    return {
        "user": user, "workspace": workspace, "link": link,
        "root": root, "a": a, "b": b,
        "deep": deep, "in_a": in_a, "loose": loose,
    }


async def workspace_rows(session_factory, workspace_id):
    async with session_factory() as session:
        folders = (await session.execute(
            select(Folder).where(Folder.workspace_id == workspace_id)
        )).scalars().all()
        files = (await session.execute(
            select(FileRecord).where(FileRecord.workspace_id == workspace_id)
        )).scalars().all()
        return list(folders), list(files)


async def storage_used(session_factory, user_id):
    async with session_factory() as session:
        return (await session.get(User, user_id)).storage_used


class TestCopyTreeNodes:

    async def test_copies_subtree_with_hierarchy(self, service, session_factory, inbox):
        a, b, deep = inbox["a"], inbox["b"], inbox["deep"]
        selection = [folder_node(a, [folder_node(b, [file_node(deep)]), file_node(inbox["in_a"])])]

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, selection, None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.success
        assert result.copied_folders == 2
        assert result.copied_files == 2
        assert result.total_size == 500
        assert result.errors == []

        folders, files = await workspace_rows(session_factory, inbox["workspace"].id)
        by_name = {f.name: f for f in folders}
        assert set(by_name) == {"A", "B"}
        assert by_name["A"].parent_folder_id is None
        assert by_name["A"].path == "/A"
        assert by_name["B"].parent_folder_id == by_name["A"].id
        assert by_name["B"].path == "/A/B"
        assert by_name["B"].depth == 1
        assert by_name["A"].id != a.id

        copied = {f.file_name: f for f in files}
        assert copied["file.txt"].folder_id == by_name["B"].id
        assert copied["file.txt"].copied_from_file_id == deep.id
        assert copied["file.txt"].workspace_id == inbox["workspace"].id
        assert copied["file.txt"].link_id is None
        assert copied["file.txt"].storage_path == deep.storage_path
        assert copied["notes.txt"].folder_id == by_name["A"].id

        assert await storage_used(session_factory, inbox["user"].id) == 500

    async def test_descendant_selected_before_its_ancestor(self, service, session_factory, inbox):
        a, b, deep = inbox["a"], inbox["b"], inbox["deep"]
        selection = [
            folder_node(b, [file_node(deep)]),
            folder_node(a, [folder_node(b, [file_node(deep)])]),
        ]

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, selection, None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.copied_folders == 2
        assert result.copied_files == 1
        folders, files = await workspace_rows(session_factory, inbox["workspace"].id)
        by_name = {f.name: f for f in folders}
        assert by_name["B"].parent_folder_id == by_name["A"].id
        assert by_name["B"].path == "/A/B"
        assert files[0].folder_id == by_name["B"].id

    async def test_separately_selected_child_folder_lands_under_parent(self, service, session_factory, inbox):
        a, b = inbox["a"], inbox["b"]

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, [folder_node(b), folder_node(a)], None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.copied_folders == 2
        folders, _ = await workspace_rows(session_factory, inbox["workspace"].id)
        by_name = {f.name: f for f in folders}
        assert by_name["A"].parent_folder_id is None
        assert by_name["B"].parent_folder_id == by_name["A"].id

    async def test_children_without_parent_ids_keep_structure(self, service, session_factory, inbox):
        a, b, deep = inbox["a"], inbox["b"], inbox["deep"]
        selection = [TreeNode(
            id=a.id, name="A", type="folder", path="/Root/A",
            children=[TreeNode(
                id=b.id, name="B", type="folder", path="/Root/A/B",
                children=[TreeNode(id=deep.id, name="file.txt", type="file")],
            )],
        )]

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, selection, None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.success
        folders, files = await workspace_rows(session_factory, inbox["workspace"].id)
        paths = {f.name: f.path for f in folders}
        assert paths == {"A": "/A", "B": "/A/B"}
        by_name = {f.name: f for f in folders}
        assert files[0].folder_id == by_name["B"].id

    async def test_source_rows_are_untouched(self, service, session_factory, inbox):
        async with session_factory() as session:
            await service.copy_tree_nodes_to_workspace(
                session, [file_node(inbox["loose"])], None, inbox["user"].id, inbox["workspace"].id,
            )

        async with session_factory() as session:
            source = await session.get(FileRecord, inbox["loose"].id)
            assert source.link_id == inbox["link"].id
            assert source.workspace_id is None

    async def test_places_copy_under_target_folder(self, rows, service, session_factory, inbox):
        target = await rows.folder(inbox["user"], "Inbox", workspace=inbox["workspace"])

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, [folder_node(inbox["b"], [file_node(inbox["deep"])])],
                target.id, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.copied_folders == 1
        folders, files = await workspace_rows(session_factory, inbox["workspace"].id)
        new_b = next(f for f in folders if f.name == "B")
        assert new_b.parent_folder_id == target.id
        assert new_b.path == "/Inbox/B"
        assert files[0].folder_id == new_b.id

    async def test_loose_file_goes_to_target(self, service, session_factory, inbox):
        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, [file_node(inbox["loose"])], None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.copied_files == 1
        _, files = await workspace_rows(session_factory, inbox["workspace"].id)
        assert files[0].folder_id is None

    async def test_file_selected_twice_is_copied_once(self, service, session_factory, inbox):
        deep = inbox["deep"]
        selection = [folder_node(inbox["b"], [file_node(deep)]), file_node(deep)]

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, selection, None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.copied_files == 1
        assert result.total_size == 300

    async def test_flat_copy_drops_folders(self, service, session_factory, inbox):
        selection = [folder_node(inbox["a"], [folder_node(inbox["b"], [file_node(inbox["deep"])])])]

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, selection, None, inbox["user"].id, inbox["workspace"].id,
                CopyOptions(preserve_structure=False),
            )

        assert result.copied_folders == 0
        assert result.copied_files == 1
        folders, files = await workspace_rows(session_factory, inbox["workspace"].id)
        assert folders == []
        assert files[0].folder_id is None

    async def test_foreign_file_is_skipped_and_reported(self, rows, service, session_factory, inbox):
        stranger = await rows.user()
        their_workspace = await rows.workspace(stranger)
        their_link = await rows.link(stranger, their_workspace, slug="theirs")
        foreign = await rows.file(stranger, "secret.pdf", size=70, link=their_link)

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, [file_node(inbox["loose"]), file_node(foreign)],
                None, inbox["user"].id, inbox["workspace"].id,
            )

        assert not result.success
        assert result.copied_files == 1
        assert [(e.file_id, e.code) for e in result.errors] == [(foreign.id, "UNAUTHORIZED")]
        assert await storage_used(session_factory, inbox["user"].id) == 50

    async def test_missing_file_is_reported(self, service, session_factory, inbox):
        ghost = TreeNode(id=uuid.uuid4(), name="ghost.txt", type="file")

        async with session_factory() as session:
            result = await service.copy_tree_nodes_to_workspace(
                session, [ghost], None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.copied_files == 0
        assert result.errors[0].code == ErrorCode.NOT_FOUND.value

    async def test_quota_exceeded_writes_nothing(self, rows, service, session_factory):
        user = await rows.user(storage_used=900, storage_limit=1000)
        workspace = await rows.workspace(user)
        link = await rows.link(user, workspace)
        folder = await rows.folder(user, "Big", link=link)
        big = await rows.file(user, "big.bin", size=200, folder=folder, link=link)

        with pytest.raises(QuotaExceededError):
            async with session_factory() as session:
                await service.copy_tree_nodes_to_workspace(
                    session, [folder_node(folder, [file_node(big)])], None, user.id, workspace.id,
                )

        folders, files = await workspace_rows(session_factory, workspace.id)
        assert folders == []
        assert files == []
        assert await storage_used(session_factory, user.id) == 900

    async def test_foreign_files_do_not_count_toward_quota(self, rows, service, session_factory):
        user = await rows.user(storage_used=0, storage_limit=1000)
        workspace = await rows.workspace(user)
        link = await rows.link(user, workspace)
        mine = await rows.file(user, "mine.txt", size=300, link=link)
        stranger = await rows.user()
        their_link = await rows.link(stranger, await rows.workspace(stranger), slug="theirs")
        huge = await rows.file(stranger, "huge.iso", size=5000, link=their_link)

        async with session_factory() as session:
            result = await service.copy_files_to_workspace(
                session, [mine.id, huge.id], None, user.id, workspace.id,
            )

        assert result.copied_files == 1
        assert [e.code for e in result.errors] == ["UNAUTHORIZED"]
        assert await storage_used(session_factory, user.id) == 300

    async def test_client_sizes_are_not_trusted(self, rows, service, session_factory):
        user = await rows.user(storage_used=0, storage_limit=100)
        workspace = await rows.workspace(user)
        link = await rows.link(user, workspace)
        big = await rows.file(user, "big.bin", size=500, link=link)
        node = file_node(big).model_copy(update={"size": 1})

        with pytest.raises(QuotaExceededError):
            async with session_factory() as session:
                await service.copy_tree_nodes_to_workspace(session, [node], None, user.id, workspace.id)

    async def test_unknown_workspace(self, service, session_factory, inbox):
        with pytest.raises(CopyError) as exc_info:
            async with session_factory() as session:
                await service.copy_tree_nodes_to_workspace(
                    session, [file_node(inbox["loose"])], None, inbox["user"].id, uuid.uuid4(),
                )
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    async def test_target_folder_from_another_workspace(self, rows, service, session_factory, inbox):
        stranger = await rows.user()
        their_workspace = await rows.workspace(stranger)
        their_folder = await rows.folder(stranger, "Elsewhere", workspace=their_workspace)

        with pytest.raises(CopyError) as exc_info:
            async with session_factory() as session:
                await service.copy_tree_nodes_to_workspace(
                    session, [file_node(inbox["loose"])], their_folder.id,
                    inbox["user"].id, inbox["workspace"].id,
                )
        assert exc_info.value.code == ErrorCode.NOT_FOUND


class TestCopyFiles:

    async def test_copies_files_flat(self, rows, service, session_factory, inbox):
        target = await rows.folder(inbox["user"], "Inbox", workspace=inbox["workspace"])
        ids = [inbox["deep"].id, inbox["loose"].id, inbox["deep"].id]

        async with session_factory() as session:
            result = await service.copy_files_to_workspace(
                session, ids, target.id, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.success
        assert result.copied_files == 2
        assert result.total_size == 350
        _, files = await workspace_rows(session_factory, inbox["workspace"].id)
        copies = [f for f in files if f.copied_from_file_id is not None]
        assert {f.folder_id for f in copies} == {target.id}

    async def test_reports_unknown_ids(self, service, session_factory, inbox):
        missing = uuid.uuid4()

        async with session_factory() as session:
            result = await service.copy_files_to_workspace(
                session, [missing], None, inbox["user"].id, inbox["workspace"].id,
            )

        assert result.errors[0].file_id == missing
        assert result.errors[0].code == "NOT_FOUND"


async def test_get_files_total_size(service, session_factory, inbox):
    async with session_factory() as session:
        total = await service.get_files_total_size(
            session, [inbox["deep"].id, inbox["loose"].id, uuid.uuid4()],
        )
        assert total == 350
        assert await service.get_files_total_size(session, []) == 0


async def test_total_size_for_user_skips_foreign_files(rows, service, session_factory, inbox):
    stranger = await rows.user()
    their_link = await rows.link(stranger, await rows.workspace(stranger), slug="theirs")
    foreign = await rows.file(stranger, "secret.pdf", size=70, link=their_link)

    async with session_factory() as session:
        ids = [inbox["loose"].id, foreign.id]
        assert await service.get_files_total_size(session, ids) == 120
        assert await service.get_files_total_size(session, ids, inbox["user"].id) == 50
