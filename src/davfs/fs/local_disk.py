"""LocalDiskFileSystem — the native adapter, rooted at a host directory."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
import stat as stat_mod
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from .exceptions import InvalidOperationError, PathNotFoundError
from .types import FileInfo
from .utils import join_path, slash_clean

if TYPE_CHECKING:
    from .types import RequestContext

logger = logging.getLogger(__name__)

_ACCMODE = os.O_RDONLY | os.O_WRONLY | os.O_RDWR


def _to_info(name: str, st: os.stat_result, path: str) -> FileInfo:
    return FileInfo(
        name=name,
        is_directory=stat_mod.S_ISDIR(st.st_mode),
        size_bytes=st.st_size,
        modified_at=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        mode=stat_mod.S_IMODE(st.st_mode),
        path=path,
    )


def _fdopen_mode(flags: int) -> str:
    access = flags & _ACCMODE
    if flags & os.O_APPEND:
        return "ab" if access == os.O_WRONLY else "a+b"
    if access == os.O_RDONLY:
        return "rb"
    if access == os.O_WRONLY:
        return "wb"
    return "r+b"


class LocalFile:
    """File handle over a host file or directory.

    Directory handles carry no open descriptor; they only stat and list.
    """

    def __init__(self, host_path: Path, path: str, handle: BinaryIO | None = None) -> None:
        self.host_path = host_path
        self.path = path
        self._handle = handle

    @property
    def is_directory(self) -> bool:
        return self._handle is None

    def _require_handle(self) -> BinaryIO:
        if self._handle is None:
            raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR), str(self.host_path))
        return self._handle

    async def __aenter__(self) -> LocalFile:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def read(self, size: int = -1) -> bytes:
        handle = self._require_handle()
        return await asyncio.to_thread(handle.read, size)

    async def write(self, data: bytes) -> int:
        handle = self._require_handle()
        return await asyncio.to_thread(handle.write, data)

    async def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        handle = self._require_handle()
        return await asyncio.to_thread(handle.seek, offset, whence)

    async def stat(self) -> FileInfo:
        if self._handle is None:
            st = await asyncio.to_thread(os.stat, self.host_path)
        else:
            st = await asyncio.to_thread(os.fstat, self._handle.fileno())
        return _to_info(self.host_path.name, st, self.path)

    async def readdir(self) -> list[FileInfo]:
        """List children in the order the host returns them."""
        if self._handle is not None:
            raise NotADirectoryError(
                errno.ENOTDIR, os.strerror(errno.ENOTDIR), str(self.host_path)
            )

        def _scan() -> list[FileInfo]:
            entries: list[FileInfo] = []
            with os.scandir(self.host_path) as it:
                for entry in it:
                    st = entry.stat()
                    entries.append(_to_info(entry.name, st, join_path(self.path, entry.name)))
            return entries

        return await asyncio.to_thread(_scan)

    async def close(self) -> None:
        if self._handle is not None and not self._handle.closed:
            await asyncio.to_thread(self._handle.close)


class LocalDiskFileSystem:
    """Implements the FileSystem protocol on the host filesystem.

    While every method takes '/'-separated logical paths, ``root`` is a
    host directory, separated by ``os.sep``. An empty root means ".".

    Security: ``_resolve()`` cleans the logical path before joining it
    onto the root, so ``..`` segments can never climb above it. Names
    carrying a NUL byte, or the host separator where it is not '/',
    never reach the host. The root itself can be neither removed nor
    renamed.

    The request context is accepted but never consulted; host calls
    are blocking and run to completion once started.
    """

    def __init__(self, root: Path | str = "") -> None:
        self.root = Path(os.path.normpath(os.fspath(root) or "."))

        if not self.root.exists():
            raise FileNotFoundError(f"Root directory does not exist: {self.root}")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Root path is not a directory: {self.root}")

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def _resolve(self, name: str) -> Path | None:
        """Map a logical path to a host path, or None if it must be refused."""
        if (os.sep != "/" and os.sep in name) or "\x00" in name:
            return None
        rel = slash_clean(name).lstrip("/")
        return Path(os.path.normpath(os.path.join(self.root, rel)))

    def _require(self, name: str) -> Path:
        resolved = self._resolve(name)
        if resolved is None:
            logger.debug("Refusing to resolve %r", name)
            raise PathNotFoundError(f"Cannot resolve path: {name!r}")
        return resolved

    # =========================================================================
    # FileSystem protocol
    # =========================================================================

    async def mkdir(self, ctx: RequestContext, name: str, perm: int = 0o777) -> None:
        resolved = self._require(name)
        await asyncio.to_thread(os.mkdir, resolved, perm)

    async def open_file(
        self,
        ctx: RequestContext,
        name: str,
        flags: int = os.O_RDONLY,
        perm: int = 0o666,
    ) -> LocalFile:
        resolved = self._require(name)
        path = slash_clean(name)

        def _open() -> LocalFile:
            if (flags & _ACCMODE) == os.O_RDONLY and resolved.is_dir():
                return LocalFile(resolved, path)
            fd = os.open(resolved, flags, perm)
            try:
                handle = os.fdopen(fd, _fdopen_mode(flags))
            except Exception:
                os.close(fd)
                raise
            return LocalFile(resolved, path, handle)

        return await asyncio.to_thread(_open)

    async def remove_all(self, ctx: RequestContext, name: str) -> None:
        """Remove *name* and everything beneath it. Missing paths are not an error."""
        resolved = self._require(name)
        if resolved == self.root:
            raise InvalidOperationError("Cannot remove the root directory")

        def _remove() -> None:
            if not os.path.lexists(resolved):
                return
            if resolved.is_dir() and not resolved.is_symlink():
                shutil.rmtree(resolved)
            else:
                resolved.unlink()

        await asyncio.to_thread(_remove)

    async def rename(self, ctx: RequestContext, old_name: str, new_name: str) -> None:
        old_resolved = self._require(old_name)
        new_resolved = self._require(new_name)
        if self.root in (old_resolved, new_resolved):
            raise InvalidOperationError("Cannot rename from or to the root directory")
        await asyncio.to_thread(os.rename, old_resolved, new_resolved)

    async def stat(self, ctx: RequestContext, name: str) -> FileInfo:
        resolved = self._require(name)
        st = await asyncio.to_thread(os.stat, resolved)
        return _to_info(resolved.name, st, slash_clean(name))
