"""MOVE and COPY engines with RFC 4918 status mapping.

Each function takes the backend and a request context as parameters and
returns a ``DavResult``: the status code a protocol handler should send
and the backend error (unwrapped) behind it, if any. Section numbers in
comments refer to RFC 4918.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from http import HTTPStatus
from typing import TYPE_CHECKING, Final

from davfs.fs.exceptions import DavFSError, PathExistsError, RecursionTooDeepError
from davfs.fs.protocol import DeadPropsHolder, SupportsBulkCopy
from davfs.fs.types import DavResult, Proppatch
from davfs.fs.utils import join_path, normalize_path, split_path

from .walk import INFINITE_DEPTH

if TYPE_CHECKING:
    from davfs.fs.protocol import File, FileSystem
    from davfs.fs.types import FileInfo, RequestContext

logger = logging.getLogger(__name__)

MAX_COPY_RECURSION: Final = 1000
"""Ceiling on nested ``copy_files`` calls; guards against cyclic or pathological trees."""

COPY_BUFFER_SIZE: Final = 64 * 1024

# Errors a backend may raise for a failed call.
BACKEND_ERRORS: Final = (OSError, DavFSError)


# =============================================================================
# MOVE
# =============================================================================


async def move_files(
    ctx: RequestContext,
    fs: FileSystem,
    src: str,
    dst: str,
    overwrite: bool,
) -> DavResult:
    """Move a file or collection from *src* to *dst* (section 9.9.4)."""
    src = normalize_path(src)
    dst = normalize_path(dst)

    created = False
    try:
        await fs.stat(ctx, dst)
    except FileNotFoundError:
        created = True
    except BACKEND_ERRORS as e:
        return DavResult(HTTPStatus.FORBIDDEN, e)
    else:
        if not overwrite:
            return DavResult(
                HTTPStatus.PRECONDITION_FAILED,
                PathExistsError(f"Destination exists: {dst}"),
            )
        # Section 9.9.3: with "Overwrite: T" an existing destination gets a
        # DELETE with "Depth: infinity" before the move.
        try:
            await fs.remove_all(ctx, dst)
        except BACKEND_ERRORS as e:
            logger.warning("MOVE %s -> %s: cannot clear destination: %s", src, dst, e)
            return DavResult(HTTPStatus.FORBIDDEN, e)

    try:
        await fs.rename(ctx, src, dst)
    except BACKEND_ERRORS as e:
        logger.warning("MOVE %s -> %s failed: %s", src, dst, e)
        return DavResult(HTTPStatus.FORBIDDEN, e)

    logger.debug("MOVE %s -> %s (created=%s)", src, dst, created)
    if created:
        return DavResult(HTTPStatus.CREATED)
    return DavResult(HTTPStatus.NO_CONTENT)


# =============================================================================
# COPY
# =============================================================================


async def copy_props(dst: File, src: File) -> None:
    """Copy dead properties from *src* to *dst*.

    A no-op unless both handles implement ``DeadPropsHolder``.
    """
    if not isinstance(dst, DeadPropsHolder) or not isinstance(src, DeadPropsHolder):
        return
    props = await src.dead_props()
    if not props:
        return
    await dst.patch([Proppatch(props=list(props.values()))])


async def copy_files(
    ctx: RequestContext,
    fs: FileSystem,
    src: FileInfo,
    dst: str,
    overwrite: bool,
    depth: int,
    recursion: int = 0,
) -> DavResult:
    """Copy the resource described by *src* to *dst* (section 9.8.5).

    Backends with ``SupportsBulkCopy`` receive one identity-based call and
    enforce *overwrite* themselves; any failure maps to 500 and success to
    204. Other backends (and depth-0 copies of a collection) go through
    a path-based copy that negotiates *overwrite* like MOVE does.

    *recursion* counts nested calls; at ``MAX_COPY_RECURSION`` the copy
    aborts before touching the backend. A top-level call that exhausts the
    interpreter stack first ends the same way, with ``RecursionTooDeepError``.
    """
    if recursion >= MAX_COPY_RECURSION:
        return DavResult(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            RecursionTooDeepError(f"Copy recursion exceeded {MAX_COPY_RECURSION} levels"),
        )
    dst = normalize_path(dst)
    if recursion > 0:
        return await _dispatch_copy(ctx, fs, src, dst, overwrite, depth, recursion + 1)
    try:
        return await _dispatch_copy(ctx, fs, src, dst, overwrite, depth, recursion + 1)
    except RecursionError:
        # Each level costs several frames.
        logger.warning("COPY %s -> %s exhausted the interpreter stack", src.path, dst)
        return DavResult(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            RecursionTooDeepError(f"Copy of {src.path} nested too deeply"),
        )


async def _dispatch_copy(
    ctx: RequestContext,
    fs: FileSystem,
    src: FileInfo,
    dst: str,
    overwrite: bool,
    depth: int,
    recursion: int,
) -> DavResult:
    file_id = src.file_id
    shallow_collection = src.is_directory and depth == 0
    if isinstance(fs, SupportsBulkCopy) and file_id is not None and not shallow_collection:
        return await _bulk_copy(ctx, fs, file_id, src, dst, overwrite)
    return await _copy_tree(ctx, fs, src, dst, overwrite, depth, recursion)


async def _bulk_copy(
    ctx: RequestContext,
    fs: SupportsBulkCopy,
    file_id: int,
    src: FileInfo,
    dst: str,
    overwrite: bool,
) -> DavResult:
    dst_dir, name = split_path(dst)
    position = src.position or "/"
    try:
        if src.is_directory:
            await fs.copy(
                ctx, [file_id], [], position, dst_dir, new_name=name, overwrite=overwrite
            )
        else:
            await fs.copy(
                ctx, [], [file_id], position, dst_dir, new_name=name, overwrite=overwrite
            )
    except BACKEND_ERRORS as e:
        logger.warning("COPY %s -> %s failed: %s", src.path, dst, e)
        return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, e)
    logger.debug("COPY %s -> %s (bulk)", src.path, dst)
    return DavResult(HTTPStatus.NO_CONTENT)


async def _copy_tree(
    ctx: RequestContext,
    fs: FileSystem,
    src: FileInfo,
    dst: str,
    overwrite: bool,
    depth: int,
    recursion: int,
) -> DavResult:
    src_path = normalize_path(src.path)
    try:
        src_file = await fs.open_file(ctx, src_path, os.O_RDONLY)
    except FileNotFoundError as e:
        return DavResult(HTTPStatus.NOT_FOUND, e)
    except BACKEND_ERRORS as e:
        return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, e)

    try:
        try:
            src_info = await src_file.stat()
        except BACKEND_ERRORS as e:
            return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, e)
        perm = src_info.mode & 0o777

        created = False
        try:
            await fs.stat(ctx, dst)
        except FileNotFoundError:
            created = True
        except BACKEND_ERRORS as e:
            return DavResult(HTTPStatus.FORBIDDEN, e)
        else:
            if not overwrite:
                return DavResult(
                    HTTPStatus.PRECONDITION_FAILED,
                    PathExistsError(f"Destination exists: {dst}"),
                )
            try:
                await fs.remove_all(ctx, dst)
            except BACKEND_ERRORS as e:
                return DavResult(HTTPStatus.FORBIDDEN, e)

        if src_info.is_directory:
            result = await _copy_collection(
                ctx, fs, src_file, src_path, dst, perm, overwrite, depth, recursion
            )
        else:
            result = await _copy_content(ctx, fs, src_file, dst, perm)
        if result is not None:
            return result
    finally:
        await src_file.close()

    logger.debug("COPY %s -> %s (created=%s)", src_path, dst, created)
    if created:
        return DavResult(HTTPStatus.CREATED)
    return DavResult(HTTPStatus.NO_CONTENT)


async def _copy_collection(
    ctx: RequestContext,
    fs: FileSystem,
    src_file: File,
    src_path: str,
    dst: str,
    perm: int,
    overwrite: bool,
    depth: int,
    recursion: int,
) -> DavResult | None:
    # List before mkdir so a destination inside the source is not copied into itself.
    children: list[FileInfo] = []
    if depth == INFINITE_DEPTH:
        try:
            children = await src_file.readdir()
        except BACKEND_ERRORS as e:
            return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, e)

    try:
        await fs.mkdir(ctx, dst, perm)
    except BACKEND_ERRORS as e:
        return DavResult(HTTPStatus.FORBIDDEN, e)

    for child in children:
        child = dataclasses.replace(child, path=join_path(src_path, child.name))
        result = await copy_files(
            ctx, fs, child, join_path(dst, child.name), overwrite, depth, recursion
        )
        if result.error is not None:
            # TODO: report per-resource failures as a 207 Multi-Status body.
            return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, result.error)
    return None


async def _copy_content(
    ctx: RequestContext,
    fs: FileSystem,
    src_file: File,
    dst: str,
    perm: int,
) -> DavResult | None:
    try:
        dst_file = await fs.open_file(ctx, dst, os.O_RDWR | os.O_CREAT | os.O_TRUNC, perm)
    except FileNotFoundError as e:
        # Section 9.8.5: missing intermediate collections.
        return DavResult(HTTPStatus.CONFLICT, e)
    except BACKEND_ERRORS as e:
        return DavResult(HTTPStatus.FORBIDDEN, e)

    try:
        while chunk := await src_file.read(COPY_BUFFER_SIZE):
            await dst_file.write(chunk)
        await copy_props(dst_file, src_file)
    except BACKEND_ERRORS as e:
        await dst_file.close()
        return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, e)

    try:
        await dst_file.close()
    except BACKEND_ERRORS as e:
        return DavResult(HTTPStatus.INTERNAL_SERVER_ERROR, e)
    return None
