"""Product operations for the admin panel.

Each operation is expressed as a pure transform handed to the catalog
repository, preceded by image uploads when the product gains new files. The
repository accepts one mutation at a time, so every write goes through
``self._lock``.
"""

from __future__ import annotations

import datetime as _dt
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence
from uuid import uuid4

from catalogstore.assets import AssetManager
from catalogstore.codec import (
    CatalogDocument,
    CatalogMeta,
    ProductRecord,
    ensure_unique_slug,
    slugify,
)
from catalogstore.errors import DuplicateSlug, ProductNotFound
from catalogstore.images import PendingImage
from catalogstore.repository import CatalogRepository, RepositoryState

LOGGER = logging.getLogger(__name__)

UPLOAD_PREFIX = "upload:"


def utc_now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ProductDraft:
    """Editable fields of a product as submitted by the admin form.

    ``images`` lists existing asset paths and ``upload:<n>`` references to the
    n-th pending file, in display order.
    """

    title: str
    price: int
    description: str
    status: str = "available"
    currency: Optional[str] = None
    slug: Optional[str] = None
    images: list[str] = field(default_factory=list)


def check_image_order(order: Sequence[str], existing: Sequence[str] = ()) -> None:
    """Reject plain paths that are not already images of the product.

    A draft may only reorder or drop the images it has; new files arrive as
    ``upload:<n>`` references.
    """

    allowed = set(existing)
    for entry in order:
        if entry and not entry.startswith(UPLOAD_PREFIX) and entry not in allowed:
            raise ValueError(f"{entry} is not an image of this product")


def resolve_images(order: Sequence[str], uploaded: dict[str, str]) -> list[str]:
    """Map ``upload:<n>`` references to stored paths; unreferenced uploads go last."""

    images: list[str] = []
    for entry in order:
        if entry.startswith(UPLOAD_PREFIX):
            path = uploaded.get(entry)
            if path:
                images.append(path)
        elif entry:
            images.append(entry)
    for temp_id, path in uploaded.items():
        if temp_id not in order:
            images.append(path)
    return images


def pending_from_files(files: Sequence[tuple[str, str, bytes]]) -> list[PendingImage]:
    """Build the upload queue from ``(filename, content_type, data)`` triples."""

    return [
        PendingImage(temp_id=f"{UPLOAD_PREFIX}{index}", data=data, filename=name, content_type=kind)
        for index, (name, kind, data) in enumerate(files)
    ]


class ProductCatalog:
    """High-level operations over the catalog repository and its images."""

    def __init__(
        self,
        repository: CatalogRepository,
        assets: AssetManager,
        *,
        clock: Callable[[], str] = utc_now,
    ):
        self.repository = repository
        self.assets = assets
        self._clock = clock
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def _ensure_loaded(self) -> None:
        if self.repository.state is not RepositoryState.READY:
            self.repository.load()

    def document(self) -> CatalogDocument:
        with self._lock:
            self._ensure_loaded()
            return self.repository.document

    def reload(self) -> CatalogDocument:
        with self._lock:
            return self.repository.load()

    def products(self) -> list[ProductRecord]:
        return self.document().products

    def meta(self) -> CatalogMeta:
        return self.document().meta

    def get(self, product_id: str) -> Optional[ProductRecord]:
        return self.document().find(product_id)

    def get_by_slug(self, slug: str) -> Optional[ProductRecord]:
        return self.document().find_slug(slug)

    def _require(self, product_id: str) -> ProductRecord:
        self._ensure_loaded()
        product = self.repository.document.find(product_id)
        if product is None:
            raise ProductNotFound(f"product {product_id} not found")
        return product

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(self, draft: ProductDraft, pending: Sequence[PendingImage] = ()) -> ProductRecord:
        with self._lock:
            self._ensure_loaded()
            current = self.repository.document
            check_image_order(draft.images)
            slug = ensure_unique_slug(slugify(draft.slug or draft.title), current.products)
            uploaded = self.assets.upload_pending(slug, pending) if pending else {}
            now = self._clock()
            record = ProductRecord(
                id=uuid4().hex,
                slug=slug,
                title=draft.title.strip(),
                price=draft.price,
                currency=draft.currency or current.meta.currency,
                status="sold" if draft.status == "sold" else "available",
                images=resolve_images(draft.images, uploaded),
                description=draft.description,
                created_at=now,
                updated_at=now,
            )

            def transform(document: CatalogDocument) -> None:
                if document.find_slug(slug) is not None:
                    raise DuplicateSlug(f"slug {slug!r} was taken by another change")
                document.products.append(record.model_copy(deep=True))

            self.repository.mutate(transform, f"feat(admin): create product {slug}")
            LOGGER.info("created product %s", slug)
            return record

    def update(
        self,
        product_id: str,
        draft: ProductDraft,
        pending: Sequence[PendingImage] = (),
    ) -> ProductRecord:
        with self._lock:
            original = self._require(product_id)
            check_image_order(draft.images, original.images)
            uploaded = self.assets.upload_pending(original.slug, pending) if pending else {}
            changes = {
                "title": draft.title.strip(),
                "price": draft.price,
                "currency": draft.currency or original.currency,
                "status": "sold" if draft.status == "sold" else "available",
                "description": draft.description,
                "images": resolve_images(draft.images, uploaded),
                "updated_at": self._clock(),
            }

            def transform(document: CatalogDocument) -> None:
                for index, product in enumerate(document.products):
                    if product.id == product_id:
                        document.products[index] = product.model_copy(
                            update={**changes, "images": list(changes["images"])}
                        )
                        return
                raise ProductNotFound(f"product {product_id} was removed by another change")

            committed = self.repository.mutate(transform, f"fix(admin): update product {original.slug}")
            return committed.find(product_id)  # type: ignore[return-value]

    def toggle_status(self, product_id: str) -> ProductRecord:
        with self._lock:
            product = self._require(product_id)
            target = "available" if product.status == "sold" else "sold"
            now = self._clock()

            def transform(document: CatalogDocument) -> None:
                current = document.find(product_id)
                if current is None:
                    raise ProductNotFound(f"product {product_id} was removed by another change")
                current.status = target
                current.updated_at = now

            committed = self.repository.mutate(transform, f"fix(admin): toggle product {product.slug}")
            return committed.find(product_id)  # type: ignore[return-value]

    def delete(self, product_id: str, *, delete_images: bool = False) -> ProductRecord:
        with self._lock:
            product = self._require(product_id)

            def transform(document: CatalogDocument) -> None:
                document.products = [item for item in document.products if item.id != product_id]

            self.repository.mutate(transform, f"chore(admin): delete product {product.slug}")
            if delete_images:
                self.assets.delete_assets(product.slug)
            return product

    def update_meta(self, meta: CatalogMeta) -> CatalogMeta:
        with self._lock:

            def transform(document: CatalogDocument) -> None:
                document.meta = meta.model_copy(deep=True)

            return self.repository.mutate(transform, "chore(admin): update store settings").meta
