"""MountRegistry, MountConfig and mount permissions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import MountNotFoundError
from .utils import normalize_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from .protocol import FileSystem


class Permission(str, Enum):
    """Permission level for a mount point."""

    READ_WRITE = "read_write"
    READ_ONLY = "read_only"


@dataclass
class MountConfig:
    """Configuration for a single mount point."""

    mount_path: str
    """Logical path prefix, e.g. "/files", "/archive"."""

    backend: FileSystem
    """Storage backend implementing the FileSystem protocol."""

    session_factory: Callable[..., AsyncSession] | None = None
    """Async session factory for SQL backends.  ``None`` for the native adapter."""

    permission: Permission = Permission.READ_WRITE
    """READ_ONLY mounts refuse MOVE and COPY into them."""

    label: str = ""
    """Display name for the mount."""

    @property
    def has_session_factory(self) -> bool:
        return self.session_factory is not None

    @property
    def writable(self) -> bool:
        return self.permission == Permission.READ_WRITE

    def __post_init__(self) -> None:
        self.mount_path = normalize_path(self.mount_path).rstrip("/") or "/"
        if not self.label:
            self.label = self.mount_path.lstrip("/") or "root"


class MountRegistry:
    """Registry of active mount points.

    Resolves logical paths to (MountConfig, relative_path) tuples.
    """

    def __init__(self) -> None:
        self._mounts: dict[str, MountConfig] = {}

    def add_mount(self, config: MountConfig) -> None:
        """Add or replace a mount point."""
        self._mounts[config.mount_path] = config

    def remove_mount(self, mount_path: str) -> MountConfig | None:
        """Remove a mount point, returning its config if it existed."""
        mount_path = normalize_path(mount_path).rstrip("/") or "/"
        return self._mounts.pop(mount_path, None)

    def resolve(self, path: str) -> tuple[MountConfig, str]:
        """Resolve a logical path to its mount and the path inside it.

        Finds the longest matching mount prefix and strips it.
        """
        path = normalize_path(path)

        best_match: MountConfig | None = None
        best_len = -1

        for mount_path, config in self._mounts.items():
            if mount_path == "/":
                matches = True
            else:
                matches = path == mount_path or path.startswith(mount_path + "/")
            if matches and len(mount_path) > best_len:
                best_match = config
                best_len = len(mount_path)

        if best_match is None:
            raise MountNotFoundError(f"No mount found for path: {path}")

        if best_match.mount_path == "/":
            return best_match, path
        relative = path[best_len:] or "/"
        return best_match, relative

    def list_mounts(self) -> list[MountConfig]:
        """List all registered mounts, sorted by mount_path."""
        return sorted(self._mounts.values(), key=lambda m: m.mount_path)

    def has_mount(self, mount_path: str) -> bool:
        mount_path = normalize_path(mount_path).rstrip("/") or "/"
        return mount_path in self._mounts
