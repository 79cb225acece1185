"""Filesystem layer — capability protocols, storage backends, mounts."""

from davfs.fs.database_fs import DatabaseFile, DatabaseFileSystem
from davfs.fs.exceptions import (
    CrossMountError,
    DavFSError,
    InvalidOperationError,
    MountNotFoundError,
    PathExistsError,
    PathNotFoundError,
    RecursionTooDeepError,
    RequestCancelledError,
    SkipSubtree,
    StorageError,
)
from davfs.fs.local_disk import LocalDiskFileSystem, LocalFile
from davfs.fs.mounts import MountConfig, MountRegistry, Permission
from davfs.fs.protocol import DeadPropsHolder, File, FileSystem, SupportsBulkCopy
from davfs.fs.types import (
    DavResult,
    FileInfo,
    Property,
    Proppatch,
    Propstat,
    RequestContext,
)
from davfs.fs.utils import normalize_path, slash_clean, split_path

__all__ = [
    "CrossMountError",
    "DatabaseFile",
    "DatabaseFileSystem",
    "DavFSError",
    "DavResult",
    "DeadPropsHolder",
    "File",
    "FileInfo",
    "FileSystem",
    "InvalidOperationError",
    "LocalDiskFileSystem",
    "LocalFile",
    "MountConfig",
    "MountNotFoundError",
    "MountRegistry",
    "PathExistsError",
    "PathNotFoundError",
    "Permission",
    "Property",
    "Proppatch",
    "Propstat",
    "RecursionTooDeepError",
    "RequestCancelledError",
    "RequestContext",
    "SkipSubtree",
    "StorageError",
    "SupportsBulkCopy",
    "normalize_path",
    "slash_clean",
    "split_path",
]
