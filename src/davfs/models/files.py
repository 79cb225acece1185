"""Folder, file and dead-property records for the database backend.

Every folder and file carries ``position``: the logical path of the
folder that contains it ("/" for top-level entries). A path lookup is
then a single ``(position, name)`` query, and identity-based operations
can check that a record still lives where the caller believes it does.
The virtual root "/" has no record.
"""

from __future__ import annotations

import posixpath
from datetime import UTC, datetime

from sqlalchemy import DateTime, LargeBinary, UniqueConstraint
from sqlmodel import Field, SQLModel

FOLDER_KIND = "folder"
FILE_KIND = "file"


class FolderRecord(SQLModel, table=True):
    """A collection — ``davfs_folders``."""

    __tablename__ = "davfs_folders"
    __table_args__ = (UniqueConstraint("position", "name", name="davfs_folders_position_name"),)

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    parent_id: int | None = Field(default=None, index=True)
    position: str = Field(default="/", index=True)
    mode: int = Field(default=0o755)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )

    @property
    def path(self) -> str:
        return posixpath.join(self.position, self.name)


class FileRecord(SQLModel, table=True):
    """A regular resource with its content — ``davfs_files``."""

    __tablename__ = "davfs_files"
    __table_args__ = (UniqueConstraint("position", "name", name="davfs_files_position_name"),)

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    folder_id: int | None = Field(default=None, index=True)
    position: str = Field(default="/", index=True)
    mode: int = Field(default=0o644)
    size_bytes: int = Field(default=0)
    content: bytes = Field(default=b"", sa_type=LargeBinary)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )

    @property
    def path(self) -> str:
        return posixpath.join(self.position, self.name)


class DeadPropertyRecord(SQLModel, table=True):
    """A dead property attached to a folder or file — ``davfs_dead_properties``."""

    __tablename__ = "davfs_dead_properties"
    __table_args__ = (
        UniqueConstraint(
            "owner_kind", "owner_id", "namespace", "name", name="davfs_dead_properties_owner_name"
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    owner_kind: str = Field(default=FILE_KIND)
    owner_id: int = Field(index=True)
    namespace: str = Field(default="")
    name: str
    value: str = Field(default="")
    lang: str = Field(default="")
