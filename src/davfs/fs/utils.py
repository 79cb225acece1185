"""Path utilities shared by the backends and the WebDAV engines."""

from __future__ import annotations

import posixpath


def slash_clean(name: str) -> str:
    """Normalize a protocol-visible path.

    - Ensures leading /
    - Resolves .. and . references (never above the root)
    - Collapses repeated slashes
    - Removes trailing slash (except for root)

    Examples:
        slash_clean("foo.txt") -> "/foo.txt"
        slash_clean("/foo//bar.txt") -> "/foo/bar.txt"
        slash_clean("/foo/../bar.txt") -> "/bar.txt"
        slash_clean("/../../etc") -> "/etc"
        slash_clean("") -> "/"
    """
    if not name or name[0] != "/":
        name = "/" + name
    name = posixpath.normpath(name)
    # POSIX keeps exactly two leading slashes; a resource path never does.
    if name.startswith("//"):
        name = "/" + name.lstrip("/")
    return name


normalize_path = slash_clean


def split_path(path: str) -> tuple[str, str]:
    """Split path into (parent_dir, name).

    Examples:
        split_path("/foo/bar.txt") -> ("/foo", "bar.txt")
        split_path("/foo.txt") -> ("/", "foo.txt")
        split_path("/") -> ("/", "")
    """
    path = normalize_path(path)
    if path == "/":
        return "/", ""
    return posixpath.split(path)


def join_path(parent: str, name: str) -> str:
    """Join a child name onto a logical path and normalize the result."""
    return normalize_path(posixpath.join(normalize_path(parent), name))


def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """True if *path* equals *ancestor* or lies beneath it."""
    path = normalize_path(path)
    ancestor = normalize_path(ancestor)
    if ancestor == "/":
        return True
    return path == ancestor or path.startswith(ancestor + "/")
