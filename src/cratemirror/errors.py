"""Errors raised by the synchronization engine."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Classification of a failed download job."""

    TRANSIENT = "transient"
    HTTP = "http"
    INTEGRITY = "integrity"
    SIZE_MISMATCH = "size_mismatch"
    STORAGE = "storage"
    UNEXPECTED = "unexpected"


class MirrorError(RuntimeError):
    """Base class for errors emitted by cratemirror."""


class CacheNotFoundError(MirrorError):
    """The given path does not contain a cache."""


class CacheExistsError(MirrorError):
    """A cache already exists at the given path."""


class CacheBusyError(MirrorError):
    """Another process holds the cache lock."""


class IndexUnavailableError(MirrorError):
    """
    The upstream index could not be reached.

    Typically a network or authentication failure. Retrying later may succeed.
    """


class IndexCorruptError(MirrorError):
    """
    The local index working copy cannot be reconciled with upstream.

    Requires operator intervention, e.g., deleting and recreating the
    index working copy.
    """


class ArchiveError(MirrorError):
    """Error emitted when downloading or committing a single archive."""

    kind: FailureKind = FailureKind.STORAGE


class TransientDownloadError(ArchiveError):
    """Network timeout, connection reset, or HTTP 5xx."""

    kind = FailureKind.TRANSIENT


class HTTPStatusError(ArchiveError):
    """The server answered with a non-retryable HTTP status."""

    kind = FailureKind.HTTP

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class IntegrityError(ArchiveError):
    """Downloaded or on-disk bytes do not match the declared checksum."""

    kind = FailureKind.INTEGRITY


class SizeMismatchError(IntegrityError):
    """Byte count disagrees with the declared or advertised size."""

    kind = FailureKind.SIZE_MISMATCH


class StorageError(ArchiveError):
    """Local filesystem failure while staging or committing an archive."""

    kind = FailureKind.STORAGE
