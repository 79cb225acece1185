"""SQLModel database models for davfs."""

from davfs.models.files import (
    FILE_KIND,
    FOLDER_KIND,
    DeadPropertyRecord,
    FileRecord,
    FolderRecord,
)

__all__ = [
    "FILE_KIND",
    "FOLDER_KIND",
    "DeadPropertyRecord",
    "FileRecord",
    "FolderRecord",
]
