"""Custom exception hierarchy for the davfs filesystem layer."""


class DavFSError(Exception):
    """Base exception for all davfs filesystem errors."""


class PathNotFoundError(DavFSError, FileNotFoundError):
    """Raised when a resource path does not exist or cannot be resolved."""


class PathExistsError(DavFSError, FileExistsError):
    """Raised when a resource already exists where one must not."""


class InvalidOperationError(DavFSError):
    """Raised on an operation a backend can never perform.

    Removing or renaming the virtual root, or moving a collection
    into its own subtree.
    """


class RecursionTooDeepError(DavFSError):
    """Raised when a copy recurses past the fixed ceiling."""


class StorageError(DavFSError):
    """Raised on storage backend failures (DB connection, query errors, etc.)."""


class RequestCancelledError(DavFSError):
    """Raised by backends that observe a cancelled request context."""


class MountNotFoundError(DavFSError):
    """Raised when no mount matches the given logical path."""


class CrossMountError(DavFSError):
    """Raised when a MOVE or COPY spans two different mounts."""


class SkipSubtree(Exception):  # noqa: N818
    """Raised by a walk visitor to prune the directory it was called on.

    Not an error: ``walk_fs`` consumes it for directories.
    """
