"""Per-product image folders in the content store.

Images live under ``<images_root>/<slug>/<slug>-<suffix>.<ext>``. Uploads run
before the catalog mutation that references them, one file at a time, so the
committed document never points at a path that was not written. Folder
cleanup after a product is deleted is best effort: the catalog change has
already been committed and is never rolled back.
"""
from __future__ import annotations

import logging
import secrets
import time
from typing import Callable, Sequence

from .contents import ContentStore, normalise_path
from .errors import ImageRejected, NotFound, StoreError, UploadFailed
from .images import PendingImage, ProcessedImage, process_image

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGES_ROOT = "data/images"

Processor = Callable[[PendingImage], ProcessedImage]


class AssetManager:
    """Upload and delete the images that belong to catalog products."""

    def __init__(
        self,
        store: ContentStore,
        images_root: str = DEFAULT_IMAGES_ROOT,
        *,
        processor: Processor = process_image,
    ):
        self.store = store
        self.images_root = normalise_path(images_root)
        self.processor = processor

    def directory_for(self, slug: str) -> str:
        return f"{self.images_root}/{slug}"

    def path_for(self, slug: str, index: int, extension: str) -> str:
        suffix = f"{int(time.time() * 1000)}-{index}-{secrets.token_hex(2)}"
        return f"{self.directory_for(slug)}/{slug}-{suffix}.{extension}"

    def upload_pending(self, slug: str, queue: Sequence[PendingImage]) -> dict[str, str]:
        """Process and write every queued image; returns ``temp_id -> path``.

        The first failure aborts the batch with ``UploadFailed``. Files written
        before the failure stay in the store unreferenced.
        """

        uploaded: dict[str, str] = {}
        for index, image in enumerate(queue):
            try:
                processed = self.processor(image)
            except (ImageRejected, OSError) as exc:
                raise UploadFailed(image.temp_id, str(exc)) from exc

            path = self.path_for(slug, index, processed.extension)
            name = path.rsplit("/", 1)[-1]
            try:
                self.store.write(
                    path,
                    processed.data,
                    None,
                    message=f"feat(admin): upload image {slug}/{name}",
                )
            except StoreError as exc:
                raise UploadFailed(
                    image.temp_id,
                    f"could not upload {image.filename or image.temp_id}: {exc}",
                ) from exc
            LOGGER.info("uploaded %s (%d bytes)", path, len(processed.data))
            uploaded[image.temp_id] = path
        return uploaded

    def delete_assets(self, slug: str) -> list[str]:
        """Remove every file in the product's image folder; never raises."""

        directory = self.directory_for(slug)
        try:
            entries = self.store.list(directory)
        except NotFound:
            return []
        except StoreError as exc:
            LOGGER.warning("could not list %s, leaving images in place: %s", directory, exc)
            return []

        removed: list[str] = []
        for entry in entries:
            if entry.kind != "file":
                continue
            try:
                self.store.remove(
                    entry.path,
                    entry.version,
                    message=f"chore(admin): delete image {entry.path}",
                )
            except NotFound:
                continue
            except StoreError as exc:
                LOGGER.warning("could not delete %s: %s", entry.path, exc)
                continue
            removed.append(entry.path)
        LOGGER.info("removed %d image(s) from %s", len(removed), directory)
        return removed
