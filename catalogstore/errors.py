"""Exception hierarchy for the catalog document store.

Content store failures all derive from :class:`StoreError` so callers can
catch them uniformly; the subclasses are distinct because the repository
branches on them (only version conflicts are ever retried).
"""

from __future__ import annotations


class StoreError(RuntimeError):
    """Raised when a content store operation fails.

    ``status`` carries the backend status code when there is one.
    """

    def __init__(self, message: str = "", *, status: int | None = None):
        super().__init__(message)
        self.status = status


class NotFound(StoreError):
    """The requested path does not exist in the content store."""


class VersionConflict(StoreError):
    """The expected version no longer matches the stored one."""


class ConflictRetriesExhausted(VersionConflict):
    """Every attempt of a mutation lost the race against another writer."""

    def __init__(self, attempts: int):
        super().__init__("could not save changes, please retry")
        self.attempts = attempts


class Unauthorized(StoreError):
    """The credential is missing or was rejected by the backend."""


class StoreTimeout(StoreError):
    """The backend did not answer within the configured interval.

    A write that times out may still have been applied server side; the next
    ``load()`` reveals the actual state.
    """


class UploadFailed(StoreError):
    """A queued image could not be processed or written."""

    def __init__(self, temp_id: str, message: str):
        super().__init__(message)
        self.temp_id = temp_id


class MalformedDocument(ValueError):
    """The stored document bytes are not valid JSON."""


class ImageRejected(ValueError):
    """An uploaded file is not an accepted image."""

    def __init__(self, message: str, *, too_large: bool = False):
        super().__init__(message)
        self.too_large = too_large


class CatalogError(Exception):
    """Base class for catalog rule violations."""


class ProductNotFound(CatalogError):
    """No product with the given identifier exists."""


class DuplicateSlug(CatalogError):
    """Two products would share the same slug."""
