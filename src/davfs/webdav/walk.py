"""Depth-bounded tree traversal for PROPFIND listings and pre-flight checks."""

from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Final

from davfs.fs.exceptions import DavFSError, SkipSubtree
from davfs.fs.utils import join_path, normalize_path

if TYPE_CHECKING:
    from davfs.fs.protocol import FileSystem
    from davfs.fs.types import FileInfo, RequestContext

logger = logging.getLogger(__name__)

INFINITE_DEPTH: Final = -1

WalkFunc = Callable[[str, "FileInfo", BaseException | None], Awaitable[None] | None]
"""Visitor: ``(path, info, error)``. Raise ``SkipSubtree`` to prune a directory."""


async def _visit(
    walk_fn: WalkFunc, name: str, info: FileInfo, error: BaseException | None
) -> None:
    result = walk_fn(name, info, error)
    if inspect.isawaitable(result):
        await result


async def _report_listing_error(
    walk_fn: WalkFunc, name: str, info: FileInfo, error: BaseException
) -> None:
    # Only reached for directories.
    try:
        await _visit(walk_fn, name, info, error)
    except SkipSubtree:
        logger.debug("Skipping unreadable subtree %s", name)


async def walk_fs(
    ctx: RequestContext,
    fs: FileSystem,
    depth: int,
    name: str,
    info: FileInfo,
    walk_fn: WalkFunc,
) -> None:
    """Traverse *fs* from *name* down to *depth* levels, pre-order.

    *depth* is 0, 1 or ``INFINITE_DEPTH``. ``walk_fn`` is called on each
    node before its children and may be a plain function or a coroutine
    function. If it raises ``SkipSubtree`` on a directory, that
    directory's descendants are skipped and the walk carries on with its
    siblings. Any other exception (including ``SkipSubtree`` raised on a
    non-directory) aborts the walk and propagates.

    Children are listed by opening the node; if that fails, ``walk_fn``
    is called again on the node with the error. Raising ``SkipSubtree``
    from that call drops the directory and the walk goes on; any other
    exception aborts it. Files are visited before subdirectories, each
    group in the order the backend lists them.
    """
    name = normalize_path(name)
    try:
        await _visit(walk_fn, name, info, None)
    except SkipSubtree:
        if info.is_directory:
            logger.debug("Skipping subtree %s", name)
            return
        raise

    if not info.is_directory or depth == 0:
        return
    if depth == 1:
        depth = 0

    try:
        f = await fs.open_file(ctx, name, os.O_RDONLY)
    except (OSError, DavFSError) as e:
        await _report_listing_error(walk_fn, name, info, e)
        return
    try:
        children = await f.readdir()
    except (OSError, DavFSError) as e:
        await _report_listing_error(walk_fn, name, info, e)
        return
    finally:
        await f.close()

    files = [c for c in children if not c.is_directory]
    dirs = [c for c in children if c.is_directory]
    for child in [*files, *dirs]:
        await walk_fs(ctx, fs, depth, join_path(name, child.name), child, walk_fn)
