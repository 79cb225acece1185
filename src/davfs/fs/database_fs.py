"""DatabaseFileSystem — identity-based SQL storage, sessions provided per-request."""

from __future__ import annotations

import errno
import io
import logging
import os
from contextlib import contextmanager
from datetime import UTC, datetime
from http import HTTPStatus
from typing import TYPE_CHECKING

from sqlalchemy import or_, true
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from davfs.models.files import (
    FILE_KIND,
    FOLDER_KIND,
    DeadPropertyRecord,
    FileRecord,
    FolderRecord,
)

from .exceptions import (
    InvalidOperationError,
    PathExistsError,
    PathNotFoundError,
    StorageError,
)
from .types import FileInfo, Property, Propstat
from .utils import is_same_or_descendant, join_path, normalize_path, split_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from .types import Proppatch, RequestContext

logger = logging.getLogger(__name__)

_ACCMODE = os.O_RDONLY | os.O_WRONLY | os.O_RDWR

Record = FolderRecord | FileRecord


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        raise StorageError(f"{operation} failed: {e}") from e


def _root_folder() -> FolderRecord:
    # Transient: never added to a session.
    return FolderRecord(id=None, name="", parent_id=None, position="/", mode=0o755)


def _is_root(record: Record) -> bool:
    return isinstance(record, FolderRecord) and record.id is None


def _under(column: object, path: str) -> object:
    """SQL clause matching positions equal to or beneath *path*."""
    if path == "/":
        return true()
    c = col(column)  # type: ignore[arg-type]
    return or_(c == path, c.startswith(path + "/", autoescape=True))


def _to_info(record: Record) -> FileInfo:
    if isinstance(record, FolderRecord):
        root = _is_root(record)
        return FileInfo(
            name=record.name or "/",
            is_directory=True,
            size_bytes=0,
            modified_at=None if root else record.updated_at,
            mode=record.mode,
            path=record.path,
            file_id=record.id,
            position=None if root else record.position,
        )
    return FileInfo(
        name=record.name,
        is_directory=False,
        size_bytes=record.size_bytes,
        modified_at=record.updated_at,
        mode=record.mode,
        path=record.path,
        file_id=record.id,
        position=record.position,
    )


class DatabaseFile:
    """Handle over a folder or file record.

    File content is buffered in memory and written back on ``close``.
    Implements ``DeadPropsHolder`` on top of ``davfs_dead_properties``.
    """

    def __init__(
        self,
        fs: DatabaseFileSystem,
        ctx: RequestContext,
        record: Record,
        flags: int = os.O_RDONLY,
    ) -> None:
        self._fs = fs
        self._ctx = ctx
        self.record = record
        self._kind = FOLDER_KIND if isinstance(record, FolderRecord) else FILE_KIND
        access = flags & _ACCMODE
        self._readable = access in (os.O_RDONLY, os.O_RDWR)
        self._writable = access in (os.O_WRONLY, os.O_RDWR)
        self._append = bool(flags & os.O_APPEND)
        content = record.content if isinstance(record, FileRecord) else b""
        self._buffer = io.BytesIO(content)
        self._dirty = False
        self._closed = False

    @property
    def is_directory(self) -> bool:
        return self._kind == FOLDER_KIND

    def _require_file(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed file")
        if self.is_directory:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), self.record.path)

    async def __aenter__(self) -> DatabaseFile:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def read(self, size: int = -1) -> bytes:
        self._require_file()
        if not self._readable:
            raise io.UnsupportedOperation("File not open for reading")
        return self._buffer.read(size)

    async def write(self, data: bytes) -> int:
        self._require_file()
        if not self._writable:
            raise io.UnsupportedOperation("File not open for writing")
        if self._append:
            self._buffer.seek(0, os.SEEK_END)
        self._dirty = True
        return self._buffer.write(data)

    async def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        self._require_file()
        return self._buffer.seek(offset, whence)

    async def stat(self) -> FileInfo:
        info = _to_info(self.record)
        if self._dirty:
            info.size_bytes = len(self._buffer.getbuffer())
        return info

    async def readdir(self) -> list[FileInfo]:
        if not self.is_directory:
            raise NotADirectoryError(
                errno.ENOTDIR, os.strerror(errno.ENOTDIR), self.record.path
            )
        session = self._fs._session(self._ctx)
        with _storage_errors("readdir"):
            folders, files = await self._fs._children(session, self.record.path)
        return [_to_info(r) for r in folders] + [_to_info(r) for r in files]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._dirty or not isinstance(self.record, FileRecord):
            return
        session = self._fs._session(self._ctx)
        content = self._buffer.getvalue()
        with _storage_errors("close"):
            self.record.content = content
            self.record.size_bytes = len(content)
            self.record.updated_at = datetime.now(UTC)
            session.add(self.record)
            await session.flush()

    # ------------------------------------------------------------------
    # DeadPropsHolder
    # ------------------------------------------------------------------

    async def dead_props(self) -> dict[tuple[str, str], Property]:
        if _is_root(self.record):
            return {}
        session = self._fs._session(self._ctx)
        with _storage_errors("dead_props"):
            records = await self._fs._load_props(session, self._kind, self.record.id)
        props = [Property(r.namespace, r.name, r.value, r.lang) for r in records]
        return {p.key: p for p in props}

    async def patch(self, patches: list[Proppatch]) -> list[Propstat]:
        changed = [p for patch in patches for p in patch.props]
        if _is_root(self.record):
            return [Propstat(props=changed, status=HTTPStatus.FORBIDDEN)]

        session = self._fs._session(self._ctx)
        owner_id = self.record.id
        if owner_id is None:
            raise StorageError(f"Record has no identity: {self.record.path}")
        with _storage_errors("patch"):
            existing = {
                (r.namespace, r.name): r
                for r in await self._fs._load_props(session, self._kind, owner_id)
            }
            for patch in patches:
                for prop in patch.props:
                    current = existing.pop(prop.key, None)
                    if patch.remove:
                        if current is not None:
                            await session.delete(current)
                        continue
                    if current is None:
                        current = DeadPropertyRecord(
                            owner_kind=self._kind,
                            owner_id=owner_id,
                            namespace=prop.namespace,
                            name=prop.name,
                        )
                    current.value = prop.value
                    current.lang = prop.lang
                    session.add(current)
                    existing[prop.key] = current
            await session.flush()
        return [Propstat(props=changed, status=HTTPStatus.OK)]


class DatabaseFileSystem:
    """Database-backed file system — stateless, sessions provided per-request.

    Folders and files are rows with integer IDs; each row records its
    ``position`` (the path of its containing folder). The virtual root
    "/" has no row and cannot be removed or renamed.

    Implements ``FileSystem`` and ``SupportsBulkCopy``; its handles
    implement ``DeadPropsHolder``. Every call needs ``ctx.session`` and
    observes ``ctx`` cancellation before touching the database. The
    session is flushed, never committed: transaction boundaries belong
    to the caller.
    """

    def _session(self, ctx: RequestContext) -> AsyncSession:
        if ctx.session is None:
            raise StorageError("DatabaseFileSystem requires a session")
        ctx.raise_if_cancelled()
        return ctx.session

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    async def _get_folder(self, session: AsyncSession, path: str) -> FolderRecord | None:
        path = normalize_path(path)
        if path == "/":
            return _root_folder()
        parent, name = split_path(path)
        result = await session.execute(
            select(FolderRecord).where(
                FolderRecord.position == parent,
                FolderRecord.name == name,
            )
        )
        return result.scalar_one_or_none()

    async def _get_file(self, session: AsyncSession, path: str) -> FileRecord | None:
        path = normalize_path(path)
        if path == "/":
            return None
        parent, name = split_path(path)
        result = await session.execute(
            select(FileRecord).where(
                FileRecord.position == parent,
                FileRecord.name == name,
            )
        )
        return result.scalar_one_or_none()

    async def _lookup(self, session: AsyncSession, path: str) -> Record | None:
        folder = await self._get_folder(session, path)
        if folder is not None:
            return folder
        return await self._get_file(session, path)

    async def _require_parent(self, session: AsyncSession, path: str) -> FolderRecord:
        parent_path, _ = split_path(path)
        parent = await self._get_folder(session, parent_path)
        if parent is None:
            raise PathNotFoundError(f"Parent directory does not exist: {parent_path}")
        return parent

    async def _children(
        self, session: AsyncSession, path: str
    ) -> tuple[list[FolderRecord], list[FileRecord]]:
        folders = await session.execute(
            select(FolderRecord)
            .where(FolderRecord.position == path)
            .order_by(col(FolderRecord.name))
        )
        files = await session.execute(
            select(FileRecord)
            .where(FileRecord.position == path)
            .order_by(col(FileRecord.name))
        )
        return list(folders.scalars().all()), list(files.scalars().all())

    async def _descendants(
        self, session: AsyncSession, path: str
    ) -> tuple[list[FolderRecord], list[FileRecord]]:
        """All folders and files strictly beneath the folder at *path*."""
        folders = await session.execute(
            select(FolderRecord).where(_under(FolderRecord.position, path))
        )
        files = await session.execute(select(FileRecord).where(_under(FileRecord.position, path)))
        return list(folders.scalars().all()), list(files.scalars().all())

    async def _load_props(
        self, session: AsyncSession, kind: str, owner_id: int | None
    ) -> list[DeadPropertyRecord]:
        result = await session.execute(
            select(DeadPropertyRecord).where(
                DeadPropertyRecord.owner_kind == kind,
                DeadPropertyRecord.owner_id == owner_id,
            )
        )
        return list(result.scalars().all())

    async def _copy_props(
        self, session: AsyncSession, kind: str, src_id: int | None, dst_id: int | None
    ) -> None:
        if dst_id is None:
            raise StorageError("Copied record was not flushed")
        for prop in await self._load_props(session, kind, src_id):
            session.add(
                DeadPropertyRecord(
                    owner_kind=kind,
                    owner_id=dst_id,
                    namespace=prop.namespace,
                    name=prop.name,
                    value=prop.value,
                    lang=prop.lang,
                )
            )

    async def _delete_record(self, session: AsyncSession, record: Record) -> None:
        """Delete a record, its dead properties and (for folders) its subtree."""
        if isinstance(record, FolderRecord):
            folders, files = await self._descendants(session, record.path)
            for f in files:
                await self._delete_one(session, FILE_KIND, f)
            for d in folders:
                await self._delete_one(session, FOLDER_KIND, d)
            await self._delete_one(session, FOLDER_KIND, record)
        else:
            await self._delete_one(session, FILE_KIND, record)
        await session.flush()

    async def _delete_one(self, session: AsyncSession, kind: str, record: Record) -> None:
        for prop in await self._load_props(session, kind, record.id):
            await session.delete(prop)
        await session.delete(record)

    # ------------------------------------------------------------------
    # Core protocol: FileSystem
    # ------------------------------------------------------------------

    async def mkdir(self, ctx: RequestContext, name: str, perm: int = 0o777) -> None:
        session = self._session(ctx)
        path = normalize_path(name)
        with _storage_errors("mkdir"):
            if path == "/" or await self._lookup(session, path) is not None:
                raise PathExistsError(f"Path already exists: {path}")
            parent = await self._require_parent(session, path)
            parent_path, base = split_path(path)
            session.add(
                FolderRecord(
                    name=base,
                    parent_id=parent.id,
                    position=parent_path,
                    mode=perm & 0o777,
                )
            )
            await session.flush()
        logger.debug("Created folder %s", path)

    async def open_file(
        self,
        ctx: RequestContext,
        name: str,
        flags: int = os.O_RDONLY,
        perm: int = 0o666,
    ) -> DatabaseFile:
        session = self._session(ctx)
        path = normalize_path(name)
        access = flags & _ACCMODE
        with _storage_errors("open_file"):
            record = await self._lookup(session, path)
            if record is None:
                if not flags & os.O_CREAT:
                    raise PathNotFoundError(f"File not found: {path}")
                parent = await self._require_parent(session, path)
                parent_path, base = split_path(path)
                record = FileRecord(
                    name=base,
                    folder_id=parent.id,
                    position=parent_path,
                    mode=perm & 0o777,
                )
                session.add(record)
                await session.flush()
            elif flags & os.O_CREAT and flags & os.O_EXCL:
                raise PathExistsError(f"File already exists: {path}")
            elif isinstance(record, FolderRecord):
                if access != os.O_RDONLY:
                    raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), path)
            elif flags & os.O_TRUNC and access != os.O_RDONLY:
                record.content = b""
                record.size_bytes = 0
                record.updated_at = datetime.now(UTC)
                session.add(record)
                await session.flush()
        return DatabaseFile(self, ctx, record, flags)

    async def remove_all(self, ctx: RequestContext, name: str) -> None:
        """Remove *name* and everything beneath it. Missing paths are not an error."""
        session = self._session(ctx)
        path = normalize_path(name)
        if path == "/":
            raise InvalidOperationError("Cannot remove the root directory")
        with _storage_errors("remove_all"):
            record = await self._lookup(session, path)
            if record is None:
                return
            await self._delete_record(session, record)
        logger.debug("Removed %s", path)

    async def rename(self, ctx: RequestContext, old_name: str, new_name: str) -> None:
        session = self._session(ctx)
        old_path = normalize_path(old_name)
        new_path = normalize_path(new_name)
        if "/" in (old_path, new_path):
            raise InvalidOperationError("Cannot rename from or to the root directory")

        with _storage_errors("rename"):
            record = await self._lookup(session, old_path)
            if record is None:
                raise PathNotFoundError(f"Source not found: {old_path}")
            if old_path == new_path:
                return
            is_folder = isinstance(record, FolderRecord)
            if is_folder and is_same_or_descendant(new_path, old_path):
                raise InvalidOperationError(f"Cannot move {old_path} into itself")

            parent = await self._require_parent(session, new_path)
            target = await self._lookup(session, new_path)
            if target is not None:
                await self._replace_target(session, record, target, new_path)

            if is_folder:
                folders, files = await self._descendants(session, old_path)
                for child in [*folders, *files]:
                    child.position = new_path + child.position[len(old_path) :]
                    session.add(child)

            parent_path, base = split_path(new_path)
            record.name = base
            record.position = parent_path
            if isinstance(record, FolderRecord):
                record.parent_id = parent.id
            else:
                record.folder_id = parent.id
            record.updated_at = datetime.now(UTC)
            session.add(record)
            await session.flush()
        logger.debug("Renamed %s to %s", old_path, new_path)

    async def _replace_target(
        self, session: AsyncSession, record: Record, target: Record, path: str
    ) -> None:
        # Host rename semantics: a file replaces a file, a folder an empty folder.
        if isinstance(record, FileRecord) and isinstance(target, FileRecord):
            await self._delete_record(session, target)
            return
        if isinstance(record, FolderRecord) and isinstance(target, FolderRecord):
            folders, files = await self._children(session, path)
            if not folders and not files:
                await self._delete_record(session, target)
                return
        raise PathExistsError(f"Destination exists: {path}")

    async def stat(self, ctx: RequestContext, name: str) -> FileInfo:
        session = self._session(ctx)
        path = normalize_path(name)
        with _storage_errors("stat"):
            record = await self._lookup(session, path)
        if record is None:
            raise PathNotFoundError(f"Path not found: {path}")
        return _to_info(record)

    # ------------------------------------------------------------------
    # Capability: SupportsBulkCopy
    # ------------------------------------------------------------------

    async def copy(
        self,
        ctx: RequestContext,
        dir_ids: list[int],
        file_ids: list[int],
        src_position: str,
        dst_dir: str,
        *,
        new_name: str | None = None,
        overwrite: bool = False,
    ) -> None:
        """Deep-copy folders and files by ID into the folder at *dst_dir*.

        Every source must still live in *src_position*. Dead properties
        are copied along with the records. Collisions raise
        ``PathExistsError`` unless *overwrite* is set, in which case the
        existing target is removed first.
        """
        session = self._session(ctx)
        src_position = normalize_path(src_position)
        dst_dir = normalize_path(dst_dir)
        if new_name is not None and len(dir_ids) + len(file_ids) != 1:
            raise InvalidOperationError("new_name requires exactly one source")

        with _storage_errors("copy"):
            dst_folder = await self._get_folder(session, dst_dir)
            if dst_folder is None:
                raise PathNotFoundError(f"Destination folder not found: {dst_dir}")

            for folder_id in dir_ids:
                folder = await session.get(FolderRecord, folder_id)
                if folder is None or folder.position != src_position:
                    raise PathNotFoundError(f"Folder {folder_id} not found in {src_position}")
                target = join_path(dst_dir, new_name or folder.name)
                if is_same_or_descendant(target, folder.path):
                    raise InvalidOperationError(f"Cannot copy {folder.path} into itself")
                await self._clear_target(session, target, overwrite)
                await self._copy_folder(session, folder, dst_folder, split_path(target)[1])

            for file_id in file_ids:
                file = await session.get(FileRecord, file_id)
                if file is None or file.position != src_position:
                    raise PathNotFoundError(f"File {file_id} not found in {src_position}")
                target = join_path(dst_dir, new_name or file.name)
                if target == file.path:
                    raise InvalidOperationError(f"Cannot copy {file.path} onto itself")
                await self._clear_target(session, target, overwrite)
                await self._copy_file(session, file, dst_folder, split_path(target)[1])

            await session.flush()
        logger.debug(
            "Copied folders=%s files=%s from %s into %s", dir_ids, file_ids, src_position, dst_dir
        )

    async def _clear_target(self, session: AsyncSession, path: str, overwrite: bool) -> None:
        existing = await self._lookup(session, path)
        if existing is None:
            return
        if not overwrite:
            raise PathExistsError(f"Destination exists: {path}")
        await self._delete_record(session, existing)

    async def _copy_file(
        self, session: AsyncSession, src: FileRecord, parent: FolderRecord, name: str
    ) -> FileRecord:
        copied = FileRecord(
            name=name,
            folder_id=parent.id,
            position=parent.path,
            mode=src.mode,
            size_bytes=src.size_bytes,
            content=src.content,
        )
        session.add(copied)
        await session.flush()
        await self._copy_props(session, FILE_KIND, src.id, copied.id)
        return copied

    async def _copy_folder(
        self, session: AsyncSession, src: FolderRecord, parent: FolderRecord, name: str
    ) -> FolderRecord:
        # Snapshot the subtree before inserting anything beneath the target.
        folders, files = await self._descendants(session, src.path)

        root = FolderRecord(name=name, parent_id=parent.id, position=parent.path, mode=src.mode)
        session.add(root)
        await session.flush()
        await self._copy_props(session, FOLDER_KIND, src.id, root.id)

        copies: dict[int | None, FolderRecord] = {src.id: root}
        for folder in sorted(folders, key=lambda f: (f.position.count("/"), f.position, f.name)):
            new_parent = copies[folder.parent_id]
            copied = FolderRecord(
                name=folder.name,
                parent_id=new_parent.id,
                position=new_parent.path,
                mode=folder.mode,
            )
            session.add(copied)
            await session.flush()
            await self._copy_props(session, FOLDER_KIND, folder.id, copied.id)
            copies[folder.id] = copied

        for file in files:
            await self._copy_file(session, file, copies[file.folder_id], file.name)
        return root
