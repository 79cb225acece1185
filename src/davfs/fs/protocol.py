"""Storage capability protocols: runtime-checkable interfaces.

Split into a core protocol and opt-in capability protocols so that
backends implement just the five core methods and advertise extras
(bulk identity-based copy, dead properties) by providing the methods.
Capabilities are detected with ``isinstance()`` at the point of use.

Paths are '/'-separated logical paths regardless of host convention.
Methods raise rather than return errors: ``FileNotFoundError`` for
missing resources, ``FileExistsError`` for collisions,
``InvalidOperationError`` for root protection and ``OSError`` or
``StorageError`` for backend I/O failures.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .types import FileInfo, Property, Proppatch, Propstat, RequestContext


@runtime_checkable
class File(Protocol):
    """Handle returned by ``FileSystem.open_file``.

    Readable, seekable, statable and writable. Directory handles list
    their children through ``readdir``.
    """

    async def read(self, size: int = -1) -> bytes: ...

    async def write(self, data: bytes) -> int: ...

    async def seek(self, offset: int, whence: int = os.SEEK_SET) -> int: ...

    async def stat(self) -> FileInfo: ...

    async def readdir(self) -> list[FileInfo]: ...

    async def close(self) -> None: ...


@runtime_checkable
class FileSystem(Protocol):
    """Core interface every storage backend must implement."""

    async def mkdir(self, ctx: RequestContext, name: str, perm: int = 0o777) -> None: ...

    async def open_file(
        self,
        ctx: RequestContext,
        name: str,
        flags: int = os.O_RDONLY,
        perm: int = 0o666,
    ) -> File: ...

    async def remove_all(self, ctx: RequestContext, name: str) -> None: ...

    async def rename(self, ctx: RequestContext, old_name: str, new_name: str) -> None: ...

    async def stat(self, ctx: RequestContext, name: str) -> FileInfo: ...


@runtime_checkable
class DeadPropsHolder(Protocol):
    """Opt-in on File handles: load and patch dead properties."""

    async def dead_props(self) -> Mapping[tuple[str, str], Property]: ...

    async def patch(self, patches: list[Proppatch]) -> list[Propstat]: ...


@runtime_checkable
class SupportsBulkCopy(Protocol):
    """Opt-in on FileSystems: identity-based copy of many resources at once.

    ``dir_ids`` and ``file_ids`` name resources that all live in the folder
    at ``src_position``; they are copied into the folder at ``dst_dir``.
    ``new_name`` renames the copy when exactly one resource is copied.
    """

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
    ) -> None: ...
