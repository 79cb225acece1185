"""davfs: WebDAV MOVE, COPY and traversal semantics over pluggable storage.

Maps backend outcomes onto RFC 4918 status codes for a protocol handler.
"""

__version__ = "0.1.0"

from davfs._davfs_async import DavFSAsync
from davfs.fs.database_fs import DatabaseFileSystem
from davfs.fs.exceptions import (
    DavFSError,
    InvalidOperationError,
    PathExistsError,
    PathNotFoundError,
    RecursionTooDeepError,
    SkipSubtree,
)
from davfs.fs.local_disk import LocalDiskFileSystem
from davfs.fs.protocol import DeadPropsHolder, File, FileSystem, SupportsBulkCopy
from davfs.fs.types import DavResult, FileInfo, Property, Proppatch, RequestContext
from davfs.webdav import (
    INFINITE_DEPTH,
    MAX_COPY_RECURSION,
    copy_files,
    copy_props,
    move_files,
    walk_fs,
)

__all__ = [
    "INFINITE_DEPTH",
    "MAX_COPY_RECURSION",
    "DatabaseFileSystem",
    "DavFSAsync",
    "DavFSError",
    "DavResult",
    "DeadPropsHolder",
    "File",
    "FileInfo",
    "FileSystem",
    "InvalidOperationError",
    "LocalDiskFileSystem",
    "PathExistsError",
    "PathNotFoundError",
    "Property",
    "Proppatch",
    "RecursionTooDeepError",
    "RequestContext",
    "SkipSubtree",
    "__version__",
    "copy_files",
    "copy_props",
    "move_files",
    "walk_fs",
]
