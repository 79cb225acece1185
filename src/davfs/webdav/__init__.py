"""WebDAV operation engines: MOVE, COPY and depth-bounded traversal."""

from davfs.webdav.operations import (
    MAX_COPY_RECURSION,
    copy_files,
    copy_props,
    move_files,
)
from davfs.webdav.walk import INFINITE_DEPTH, WalkFunc, walk_fs

__all__ = [
    "INFINITE_DEPTH",
    "MAX_COPY_RECURSION",
    "WalkFunc",
    "copy_files",
    "copy_props",
    "move_files",
    "walk_fs",
]
