"""DavFSAsync — async facade: mounts, per-operation sessions, MOVE/COPY/walk."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from davfs.fs.database_fs import DatabaseFileSystem
from davfs.fs.exceptions import CrossMountError, InvalidOperationError
from davfs.fs.local_disk import LocalDiskFileSystem
from davfs.fs.mounts import MountConfig, MountRegistry, Permission
from davfs.fs.types import DavResult, RequestContext
from davfs.fs.utils import is_same_or_descendant
from davfs.models.files import DeadPropertyRecord, FileRecord, FolderRecord
from davfs.webdav.operations import copy_files, move_files
from davfs.webdav.walk import INFINITE_DEPTH, walk_fs

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from davfs.fs.protocol import FileSystem
    from davfs.fs.types import FileInfo
    from davfs.webdav.walk import WalkFunc

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TABLES = (FolderRecord, FileRecord, DeadPropertyRecord)


class DavFSAsync:
    """Async facade in front of the WebDAV engines.

    Mount-first API: create an instance, then mount backends. A protocol
    handler passes logical paths plus the Depth/Overwrite values it parsed;
    the facade resolves mounts, opens a session per operation for SQL
    mounts and returns the engine's ``DavResult``.

    Local directory::

        dav = DavFSAsync()
        await dav.mount("/files", root="/srv/webdav")
        result = await dav.move("/files/a.txt", "/files/b.txt", overwrite=False)

    Database mount — commits on success, rolls back on failure::

        engine = create_async_engine("sqlite+aiosqlite:///dav.db")
        await dav.mount("/db", engine=engine)
        result = await dav.copy("/db/docs", "/db/docs-copy")
    """

    def __init__(self) -> None:
        self._registry = MountRegistry()
        self._closed = False

    # ------------------------------------------------------------------
    # Mount / Unmount
    # ------------------------------------------------------------------

    async def mount(
        self,
        path: str,
        backend: FileSystem | None = None,
        *,
        engine: AsyncEngine | None = None,
        session_factory: Callable[..., AsyncSession] | None = None,
        root: str | Path | None = None,
        permission: Permission = Permission.READ_WRITE,
        label: str = "",
    ) -> None:
        """Mount a backend at *path*.

        With *root*, a ``LocalDiskFileSystem`` is created on that directory.
        With *engine*, a session factory is created from it and the tables
        are created if missing. With *engine* or *session_factory* and no
        *backend*, a ``DatabaseFileSystem`` is used.
        """
        if sum(x is not None for x in (engine, session_factory, root)) > 1:
            raise ValueError("Provide at most one of engine, session_factory or root")

        if engine is not None:
            session_factory = async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            )
            async with engine.begin() as conn:
                for model in _TABLES:
                    await conn.run_sync(
                        lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                    )
        if session_factory is not None and backend is None:
            backend = DatabaseFileSystem()
        if root is not None:
            backend = LocalDiskFileSystem(root)
        if backend is None:
            raise ValueError("Provide backend, engine, session_factory or root")

        config = MountConfig(
            mount_path=path,
            backend=backend,
            session_factory=session_factory,
            permission=permission,
            label=label,
        )
        self._registry.add_mount(config)
        logger.info("Mounted %s at %s", type(backend).__name__, config.mount_path)

    async def unmount(self, path: str) -> None:
        if self._registry.remove_mount(path) is not None:
            logger.info("Unmounted %s", path)

    # ------------------------------------------------------------------
    # Session Management (per-operation only)
    # ------------------------------------------------------------------

    async def _run(
        self,
        mount: MountConfig,
        operation: Callable[[RequestContext], Awaitable[T]],
    ) -> T:
        """Run *operation* with a fresh context for *mount*.

        SQL mounts get their own session, committed unless the operation
        raised or returned a failed ``DavResult``.
        """
        if mount.session_factory is None:
            return await operation(RequestContext())

        async with mount.session_factory() as session:
            ctx = RequestContext(session=session)
            try:
                result = await operation(ctx)
            except Exception:
                await session.rollback()
                raise
            if isinstance(result, DavResult) and not result.success:
                await session.rollback()
            else:
                await session.commit()
            return result

    def _resolve_pair(
        self, src: str, dst: str
    ) -> tuple[MountConfig, str, str] | DavResult:
        src_mount, src_rel = self._registry.resolve(src)
        dst_mount, dst_rel = self._registry.resolve(dst)
        if src_mount is not dst_mount:
            return DavResult(
                HTTPStatus.BAD_GATEWAY,
                CrossMountError(f"{src} and {dst} are on different mounts"),
            )
        # Source and destination trees must be disjoint.
        if is_same_or_descendant(dst_rel, src_rel) or is_same_or_descendant(src_rel, dst_rel):
            return DavResult(
                HTTPStatus.FORBIDDEN,
                InvalidOperationError(f"{src} and {dst} overlap"),
            )
        return src_mount, src_rel, dst_rel

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def stat(self, path: str) -> FileInfo:
        mount, rel = self._registry.resolve(path)
        return await self._run(mount, lambda ctx: mount.backend.stat(ctx, rel))

    async def move(self, src: str, dst: str, *, overwrite: bool = True) -> DavResult:
        """MOVE *src* to *dst* on the same mount."""
        resolved = self._resolve_pair(src, dst)
        if isinstance(resolved, DavResult):
            return resolved
        mount, src_rel, dst_rel = resolved
        if not mount.writable:
            return DavResult(
                HTTPStatus.FORBIDDEN, PermissionError(f"Mount is read-only: {mount.mount_path}")
            )
        return await self._run(
            mount, lambda ctx: move_files(ctx, mount.backend, src_rel, dst_rel, overwrite)
        )

    async def copy(
        self,
        src: str,
        dst: str,
        *,
        overwrite: bool = True,
        depth: int = INFINITE_DEPTH,
    ) -> DavResult:
        """COPY *src* to *dst* on the same mount."""
        resolved = self._resolve_pair(src, dst)
        if isinstance(resolved, DavResult):
            return resolved
        mount, src_rel, dst_rel = resolved
        if not mount.writable:
            return DavResult(
                HTTPStatus.FORBIDDEN, PermissionError(f"Mount is read-only: {mount.mount_path}")
            )

        async def _copy(ctx: RequestContext) -> DavResult:
            try:
                info = await mount.backend.stat(ctx, src_rel)
            except FileNotFoundError as e:
                return DavResult(HTTPStatus.NOT_FOUND, e)
            return await copy_files(ctx, mount.backend, info, dst_rel, overwrite, depth)

        return await self._run(mount, _copy)

    async def walk(
        self,
        path: str,
        walk_fn: WalkFunc,
        *,
        depth: int = INFINITE_DEPTH,
    ) -> None:
        """Walk the tree at *path*; visitors see mount-relative paths."""
        mount, rel = self._registry.resolve(path)

        async def _walk(ctx: RequestContext) -> None:
            info = await mount.backend.stat(ctx, rel)
            await walk_fs(ctx, mount.backend, depth, rel, info, walk_fn)

        await self._run(mount, _walk)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._closed:
            return
        for mount in self._registry.list_mounts():
            self._registry.remove_mount(mount.mount_path)
        self._closed = True

    async def __aenter__(self) -> DavFSAsync:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()
