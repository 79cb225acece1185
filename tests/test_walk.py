"""Tests for walk_fs — depth-bounded pre-order traversal."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from davfs.fs.exceptions import SkipSubtree
from davfs.fs.types import FileInfo
from davfs.webdav.walk import INFINITE_DEPTH, walk_fs

if TYPE_CHECKING:
    from davfs.fs.database_fs import DatabaseFileSystem
    from davfs.fs.local_disk import LocalDiskFileSystem
    from davfs.fs.types import RequestContext

WRITE_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_TRUNC


async def write(fs, ctx: RequestContext, path: str, data: bytes = b"") -> None:
    f = await fs.open_file(ctx, path, WRITE_FLAGS)
    await f.write(data)
    await f.close()


@pytest.fixture
async def tree(db: DatabaseFileSystem, db_ctx: RequestContext) -> DatabaseFileSystem:
    """/docs with two files and two subfolders, one file each."""
    await db.mkdir(db_ctx, "/docs")
    await db.mkdir(db_ctx, "/docs/sub")
    await db.mkdir(db_ctx, "/docs/sub2")
    await write(db, db_ctx, "/docs/b.txt")
    await write(db, db_ctx, "/docs/a.txt")
    await write(db, db_ctx, "/docs/sub/x.txt")
    await write(db, db_ctx, "/docs/sub2/y.txt")
    return db


class Recorder:
    def __init__(self, skip: set[str] | None = None) -> None:
        self.visited: list[str] = []
        self.errors: list[tuple[str, BaseException]] = []
        self.skip = skip or set()

    def __call__(self, path: str, info: FileInfo, error: BaseException | None) -> None:
        if error is not None:
            self.errors.append((path, error))
            return
        self.visited.append(path)
        if path in self.skip:
            raise SkipSubtree


class FailingOpenFS:
    """Backend whose directories cannot be opened."""

    async def open_file(self, ctx, name, flags=os.O_RDONLY, perm=0o666):
        raise PermissionError(13, "Permission denied", name)


class ListingHandle:
    def __init__(self, children: list[FileInfo]) -> None:
        self.children = children

    async def readdir(self) -> list[FileInfo]:
        return self.children

    async def close(self) -> None:
        pass


class PartlyUnreadableFS:
    """/d holds an unreadable directory ``bad`` before a readable ``good``."""

    tree = {
        "/d": [
            FileInfo(name="bad", is_directory=True),
            FileInfo(name="good", is_directory=True),
        ],
        "/d/good": [FileInfo(name="x.txt", is_directory=False)],
    }

    async def open_file(self, ctx, name, flags=os.O_RDONLY, perm=0o666):
        if name == "/d/bad":
            raise PermissionError(13, "Permission denied", name)
        return ListingHandle(self.tree[name])


async def walk(fs, ctx: RequestContext, path: str, depth: int, walk_fn) -> None:
    info = await fs.stat(ctx, path)
    await walk_fs(ctx, fs, depth, path, info, walk_fn)


# ---------------------------------------------------------------------------
# Depth
# ---------------------------------------------------------------------------


class TestDepth:
    async def test_infinite(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        rec = Recorder()
        await walk(tree, db_ctx, "/docs", INFINITE_DEPTH, rec)
        assert rec.visited == [
            "/docs",
            "/docs/a.txt",
            "/docs/b.txt",
            "/docs/sub",
            "/docs/sub/x.txt",
            "/docs/sub2",
            "/docs/sub2/y.txt",
        ]

    async def test_depth_zero(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        rec = Recorder()
        await walk(tree, db_ctx, "/docs", 0, rec)
        assert rec.visited == ["/docs"]

    async def test_depth_one(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        rec = Recorder()
        await walk(tree, db_ctx, "/docs", 1, rec)
        assert rec.visited == [
            "/docs",
            "/docs/a.txt",
            "/docs/b.txt",
            "/docs/sub",
            "/docs/sub2",
        ]

    async def test_file_root(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        rec = Recorder()
        await walk(tree, db_ctx, "/docs/a.txt", INFINITE_DEPTH, rec)
        assert rec.visited == ["/docs/a.txt"]

    async def test_name_is_normalized(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        rec = Recorder()
        info = await tree.stat(db_ctx, "/docs")
        await walk_fs(db_ctx, tree, 0, "docs/", info, rec)
        assert rec.visited == ["/docs"]

    async def test_local_disk(self, disk: LocalDiskFileSystem, ctx: RequestContext):
        await disk.mkdir(ctx, "/d")
        await disk.mkdir(ctx, "/d/e")
        await write(disk, ctx, "/d/e/f.txt", b"f")
        await write(disk, ctx, "/d/g.txt", b"g")
        rec = Recorder()
        await walk(disk, ctx, "/d", INFINITE_DEPTH, rec)
        assert rec.visited == ["/d", "/d/g.txt", "/d/e", "/d/e/f.txt"]


# ---------------------------------------------------------------------------
# SkipSubtree and visitor errors
# ---------------------------------------------------------------------------


class TestSkip:
    async def test_skip_directory_prunes_only_it(
        self, tree: DatabaseFileSystem, db_ctx: RequestContext
    ):
        rec = Recorder(skip={"/docs/sub"})
        await walk(tree, db_ctx, "/docs", INFINITE_DEPTH, rec)
        assert rec.visited == [
            "/docs",
            "/docs/a.txt",
            "/docs/b.txt",
            "/docs/sub",
            "/docs/sub2",
            "/docs/sub2/y.txt",
        ]

    async def test_skip_start_directory(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        rec = Recorder(skip={"/docs"})
        await walk(tree, db_ctx, "/docs", INFINITE_DEPTH, rec)
        assert rec.visited == ["/docs"]

    async def test_skip_on_file_propagates(
        self, tree: DatabaseFileSystem, db_ctx: RequestContext
    ):
        rec = Recorder(skip={"/docs/a.txt"})
        with pytest.raises(SkipSubtree):
            await walk(tree, db_ctx, "/docs", INFINITE_DEPTH, rec)
        assert rec.visited == ["/docs", "/docs/a.txt"]

    async def test_visitor_error_aborts(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        seen: list[str] = []

        def visit(path: str, info: FileInfo, error: BaseException | None) -> None:
            seen.append(path)
            if path == "/docs/b.txt":
                raise ValueError("stop")

        with pytest.raises(ValueError, match="stop"):
            await walk(tree, db_ctx, "/docs", INFINITE_DEPTH, visit)
        assert seen == ["/docs", "/docs/a.txt", "/docs/b.txt"]

    async def test_async_visitor(self, tree: DatabaseFileSystem, db_ctx: RequestContext):
        seen: list[str] = []

        async def visit(path: str, info: FileInfo, error: BaseException | None) -> None:
            seen.append(path)
            if path == "/docs/sub":
                raise SkipSubtree

        await walk(tree, db_ctx, "/docs", INFINITE_DEPTH, visit)
        assert "/docs/sub" in seen
        assert "/docs/sub/x.txt" not in seen
        assert "/docs/sub2/y.txt" in seen


# ---------------------------------------------------------------------------
# Listing failures
# ---------------------------------------------------------------------------


class TestListingErrors:
    async def test_open_error_reported_to_visitor(self, ctx: RequestContext):
        rec = Recorder()
        info = FileInfo(name="d", is_directory=True, path="/d")
        await walk_fs(ctx, FailingOpenFS(), INFINITE_DEPTH, "/d", info, rec)
        assert rec.visited == ["/d"]
        assert len(rec.errors) == 1
        path, error = rec.errors[0]
        assert path == "/d"
        assert isinstance(error, PermissionError)

    async def test_visitor_may_raise_listing_error(self, ctx: RequestContext):
        def visit(path: str, info: FileInfo, error: BaseException | None) -> None:
            if error is not None:
                raise error

        info = FileInfo(name="d", is_directory=True, path="/d")
        with pytest.raises(PermissionError):
            await walk_fs(ctx, FailingOpenFS(), INFINITE_DEPTH, "/d", info, visit)

    async def test_skip_on_listing_error_keeps_siblings(self, ctx: RequestContext):
        visited: list[str] = []

        def visit(path: str, info: FileInfo, error: BaseException | None) -> None:
            if error is not None:
                raise SkipSubtree
            visited.append(path)

        info = FileInfo(name="d", is_directory=True, path="/d")
        await walk_fs(ctx, PartlyUnreadableFS(), INFINITE_DEPTH, "/d", info, visit)
        assert visited == ["/d", "/d/bad", "/d/good", "/d/good/x.txt"]

    async def test_skip_on_listing_error_at_start(self, ctx: RequestContext):
        def visit(path: str, info: FileInfo, error: BaseException | None) -> None:
            if error is not None:
                raise SkipSubtree

        info = FileInfo(name="bad", is_directory=True, path="/d/bad")
        await walk_fs(ctx, PartlyUnreadableFS(), INFINITE_DEPTH, "/d/bad", info, visit)

    async def test_open_error_on_database(
        self, db: DatabaseFileSystem, db_ctx: RequestContext
    ):
        # A directory whose record vanished between stat and open.
        rec = Recorder()
        info = FileInfo(name="gone", is_directory=True, path="/gone")
        await walk_fs(db_ctx, db, INFINITE_DEPTH, "/gone", info, rec)
        assert rec.visited == ["/gone"]
        assert isinstance(rec.errors[0][1], FileNotFoundError)
