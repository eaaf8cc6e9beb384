"""Optimistic-concurrency client for the versioned catalog document."""

from .assets import AssetManager  # noqa: F401
from .codec import (  # noqa: F401
    CatalogDocument,
    CatalogMeta,
    ContactLink,
    ProductRecord,
    decode,
    encode,
    ensure_unique_slug,
    sanitize,
    slugify,
)
from .contents import ContentStore, DirEntry, StoredFile  # noqa: F401
from .errors import (  # noqa: F401
    ConflictRetriesExhausted,
    NotFound,
    StoreError,
    StoreTimeout,
    Unauthorized,
    UploadFailed,
    VersionConflict,
)
from .github import GitHubContentStore  # noqa: F401
from .images import PendingImage, ProcessedImage  # noqa: F401
from .local import LocalContentStore  # noqa: F401
from .repository import CatalogRepository, RepositoryState  # noqa: F401

__all__ = [
    "AssetManager",
    "CatalogDocument",
    "CatalogMeta",
    "CatalogRepository",
    "ConflictRetriesExhausted",
    "ContactLink",
    "ContentStore",
    "DirEntry",
    "GitHubContentStore",
    "LocalContentStore",
    "NotFound",
    "PendingImage",
    "ProcessedImage",
    "ProductRecord",
    "RepositoryState",
    "StoreError",
    "StoreTimeout",
    "StoredFile",
    "Unauthorized",
    "UploadFailed",
    "VersionConflict",
    "decode",
    "encode",
    "ensure_unique_slug",
    "sanitize",
    "slugify",
]
