"""Value types: FileInfo, RequestContext, dead properties, DavResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import TYPE_CHECKING

from .exceptions import RequestCancelledError

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class FileInfo:
    """File/directory metadata.

    ``file_id`` and ``position`` are only set by identity-based backends
    (the database backend); path-based backends leave them ``None``.
    """

    name: str
    is_directory: bool
    size_bytes: int = 0
    modified_at: datetime | None = None
    mode: int = 0o644
    path: str = ""
    file_id: int | None = None
    position: str | None = None


@dataclass
class RequestContext:
    """Per-request state threaded through every backend call.

    ``session`` is required by SQL backends and ignored by the others.
    Cancellation is advisory: only backends that call
    ``raise_if_cancelled()`` observe it.
    """

    session: AsyncSession | None = None
    _cancelled: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelledError("Request was cancelled")


@dataclass
class Property:
    """A dead property: arbitrary name/value metadata on a resource."""

    namespace: str
    name: str
    value: str = ""
    lang: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return self.namespace, self.name


@dataclass
class Proppatch:
    """One PROPPATCH instruction: set (or remove) a list of properties."""

    props: list[Property] = field(default_factory=list)
    remove: bool = False


@dataclass
class Propstat:
    """Outcome of a patch for a group of properties."""

    props: list[Property] = field(default_factory=list)
    status: HTTPStatus = HTTPStatus.OK


@dataclass
class DavResult:
    """Status code and error returned by the MOVE/COPY engines."""

    status: HTTPStatus
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is None:
            return self.status.phrase
        return f"{self.status.phrase}: {self.error}"
