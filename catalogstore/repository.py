"""Catalog repository: the single owner of the in-memory catalog document.

There is no transactional backend behind the catalog, only a content store
that accepts a write when the caller still holds the current version. Every
mutation is therefore a read-modify-write cycle guarded by that version:

1. copy the current document and apply the transform to the copy;
2. write the result with the last known version token;
3. on a version conflict reload and go back to 1, at most ``max_attempts``
   writes in total.

The transform must be pure (no I/O, no side effects outside its argument)
because it may run once per attempt. At most one ``mutate`` may be in flight
per repository; callers serialise them.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional

from .codec import CatalogDocument, CatalogMeta, decode, duplicate_slugs, empty_document, encode
from .contents import ContentStore
from .errors import (
    ConflictRetriesExhausted,
    DuplicateSlug,
    MalformedDocument,
    NotFound,
    VersionConflict,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_DOCUMENT_PATH = "data/products.json"
DEFAULT_MAX_ATTEMPTS = 3

Transform = Callable[[CatalogDocument], Optional[CatalogDocument]]


class RepositoryState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class CatalogRepository:
    """Load and mutate the catalog document with optimistic concurrency."""

    def __init__(
        self,
        store: ContentStore,
        document_path: str = DEFAULT_DOCUMENT_PATH,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        default_meta: CatalogMeta | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.document_path = document_path
        self.max_attempts = max_attempts
        self._default_meta = default_meta or CatalogMeta()
        self._document = empty_document(self._default_meta)
        self._version: Optional[str] = None
        self._state = RepositoryState.UNLOADED

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------
    @property
    def state(self) -> RepositoryState:
        return self._state

    @property
    def version(self) -> Optional[str]:
        return self._version

    @property
    def document(self) -> CatalogDocument:
        """A private copy of the current document."""

        return self._document.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------
    def load(self) -> CatalogDocument:
        previous = self._state
        self._state = RepositoryState.LOADING
        try:
            stored = self.store.read(self.document_path)
        except NotFound:
            LOGGER.info("%s does not exist yet; starting with an empty catalog", self.document_path)
            self._adopt(empty_document(self._default_meta), None)
            return self.document
        except Exception:
            self._state = previous
            raise

        try:
            document = decode(stored.content)
        except MalformedDocument as exc:
            # Keep the version so the next commit replaces the unreadable file.
            LOGGER.warning("%s is unreadable, treating it as empty: %s", self.document_path, exc)
            document = empty_document(self._default_meta)
        self._adopt(document, stored.version)
        LOGGER.info(
            "loaded %d products from %s (version %s)",
            len(document.products),
            self.document_path,
            stored.version,
        )
        return self.document

    def _adopt(self, document: CatalogDocument, version: Optional[str]) -> None:
        self._document = document
        self._version = version
        self._state = RepositoryState.READY

    # ------------------------------------------------------------------
    # Mutate
    # ------------------------------------------------------------------
    def mutate(self, transform: Transform, description: str) -> CatalogDocument:
        """Apply ``transform`` and commit it; returns the committed document."""

        if self._state is not RepositoryState.READY:
            self.load()

        attempt = 0
        while True:
            attempt += 1
            draft = self._document.model_copy(deep=True)
            outcome = transform(draft)
            updated = draft if outcome is None else outcome
            duplicates = duplicate_slugs(updated.products)
            if duplicates:
                raise DuplicateSlug(f"duplicate slug(s): {', '.join(duplicates)}")

            try:
                version = self.store.write(
                    self.document_path,
                    encode(updated),
                    self._version,
                    message=description,
                )
            except VersionConflict as exc:
                if attempt >= self.max_attempts:
                    LOGGER.error(
                        "giving up on %r after %d conflicting attempts", description, attempt
                    )
                    raise ConflictRetriesExhausted(attempt) from exc
                LOGGER.warning(
                    "version conflict on %s (attempt %d/%d), reloading",
                    self.document_path,
                    attempt,
                    self.max_attempts,
                )
                self.load()
                continue

            self._adopt(updated, version)
            LOGGER.info("committed %r as version %s", description, version)
            return self.document
