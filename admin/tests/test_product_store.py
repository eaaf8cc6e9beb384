import logging

import pytest

from admin.services.product_store import ProductDraft, pending_from_files, resolve_images
from catalogstore.codec import CatalogMeta, ContactLink, decode
from catalogstore.errors import (
    ConflictRetriesExhausted,
    DuplicateSlug,
    ProductNotFound,
    StoreError,
    UploadFailed,
    VersionConflict,
)
from tests.conftest import document_bytes

DOCUMENT = "data/products.json"


def _draft(title="Lamp", **extra):
    return ProductDraft(title=title, price=15000, description="<p>Warm light</p>", **extra)


def _stored(store):
    return decode(store.files[DOCUMENT])


def test_create_on_first_run(catalog, store):
    product = catalog.create(_draft())

    assert product.slug == "lamp"
    assert product.status == "available"
    assert product.currency == "ARS"
    assert product.created_at == product.updated_at
    assert [p.id for p in _stored(store).products] == [product.id]
    assert store.calls[-1] == ("write", DOCUMENT, None)
    assert store.messages[-1] == "feat(admin): create product lamp"


def test_create_uploads_images_before_the_catalog(catalog, store):
    pending = pending_from_files([("a.jpg", "image/jpeg", b"a"), ("b.jpg", "image/jpeg", b"b")])

    product = catalog.create(_draft(images=["upload:1", "upload:0"]), pending)

    writes = store.writes()
    assert writes[-1] == DOCUMENT
    assert len(writes) == 3
    assert product.images == [writes[1], writes[0]]
    assert all(path.startswith("data/images/lamp/") for path in product.images)
    assert _stored(store).products[0].images == product.images


def test_failed_upload_leaves_catalog_untouched(catalog, store):
    catalog.create(_draft("Chair"))
    before = store.files[DOCUMENT]
    store.fail_writes = [VersionConflict("exists")]

    with pytest.raises(UploadFailed):
        catalog.create(_draft(), pending_from_files([("a.jpg", "image/jpeg", b"a")]))

    assert store.files[DOCUMENT] == before


def test_titles_with_the_same_slug_are_disambiguated(catalog):
    first = catalog.create(_draft("Lámpara"))
    second = catalog.create(_draft("lampara"))
    assert (first.slug, second.slug) == ("lampara", "lampara-2")


def test_explicit_slug_is_normalised(catalog):
    assert catalog.create(_draft(slug="Mi Lámpara Favorita")).slug == "mi-lampara-favorita"


def test_create_detects_slug_taken_concurrently(catalog, store):
    catalog.create(_draft("Chair"))
    store.before_write = lambda _path: store.put(
        DOCUMENT,
        document_bytes(
            [
                {"id": "x", "slug": "chair", "title": "Chair"},
                {"id": "y", "slug": "lamp", "title": "Lamp"},
            ]
        ),
    )
    with pytest.raises(DuplicateSlug):
        catalog.create(_draft())


def test_update_keeps_identity(catalog, store):
    created = catalog.create(_draft())

    updated = catalog.update(created.id, _draft("Lamp XL", slug="ignored", status="sold", currency="USD"))

    assert updated.id == created.id
    assert updated.slug == "lamp"
    assert updated.title == "Lamp XL"
    assert updated.status == "sold"
    assert updated.currency == "USD"
    assert updated.created_at == created.created_at
    assert updated.updated_at != created.updated_at
    assert store.messages[-1] == "fix(admin): update product lamp"


def test_update_missing_product(catalog):
    with pytest.raises(ProductNotFound):
        catalog.update("nope", _draft())


def test_update_after_concurrent_delete(catalog, store):
    created = catalog.create(_draft())
    store.before_write = lambda _path: store.put(DOCUMENT, document_bytes([]))

    with pytest.raises(ProductNotFound):
        catalog.update(created.id, _draft("Lamp XL"))


def test_toggle_status_twice(catalog, store):
    created = catalog.create(_draft())

    assert catalog.toggle_status(created.id).status == "sold"
    assert catalog.toggle_status(created.id).status == "available"
    assert store.messages[-1] == "fix(admin): toggle product lamp"


def test_toggle_gives_up_after_repeated_conflicts(catalog, store):
    created = catalog.create(_draft())
    store.fail_writes = [VersionConflict("stale")] * 3

    with pytest.raises(ConflictRetriesExhausted):
        catalog.toggle_status(created.id)
    assert catalog.get(created.id).status == "available"


def test_delete_with_images(catalog, store):
    created = catalog.create(_draft(), pending_from_files([("a.jpg", "image/jpeg", b"a")]))

    removed = catalog.delete(created.id, delete_images=True)

    assert removed.id == created.id
    assert _stored(store).products == []
    assert not any(path.startswith("data/images/") for path in store.files)
    ops = [(op, path) for op, path, _ in store.calls]
    assert ops[-3:] == [("write", DOCUMENT), ("list", "data/images/lamp"), ("remove", created.images[0])]


def test_delete_keeps_images_by_default(catalog, store):
    created = catalog.create(_draft(), pending_from_files([("a.jpg", "image/jpeg", b"a")]))

    catalog.delete(created.id)

    assert created.images[0] in store.files
    assert store.messages[-1] == "chore(admin): delete product lamp"


def test_update_meta(catalog, store):
    meta = CatalogMeta(currency="USD", locale="en-US", contact=ContactLink(type="email", value="ana@example.com"))

    assert catalog.update_meta(meta) == meta
    assert _stored(store).meta == meta
    assert store.messages[-1] == "chore(admin): update store settings"


def test_reads_load_lazily(catalog, store):
    assert catalog.products() == []
    assert catalog.meta().currency == "ARS"
    assert catalog.get_by_slug("lamp") is None
    assert [op for op, _, _ in store.calls] == ["read"]


def test_resolve_images_skips_unknown_uploads():
    assert resolve_images(["a.webp", "upload:0", "upload:5", ""], {"upload:0": "b.webp"}) == ["a.webp", "b.webp"]


def test_delete_succeeds_when_one_image_cannot_be_removed(catalog, store, caplog):
    pending = pending_from_files([("a.jpg", "image/jpeg", b"a"), ("b.jpg", "image/jpeg", b"b")])
    created = catalog.create(_draft(), pending)
    store.fail_removes[created.images[0]] = StoreError("server error")

    with caplog.at_level(logging.WARNING, logger="catalogstore.assets"):
        catalog.delete(created.id, delete_images=True)

    assert _stored(store).products == []
    assert [path for op, path, _ in store.calls if op == "remove"] == sorted(created.images)
    assert created.images[0] in store.files
    assert created.images[1] not in store.files
    assert "could not delete" in caplog.text


def test_create_rejects_paths_that_were_never_uploaded(catalog, store):
    with pytest.raises(ValueError, match="data/images/ghost/nope.webp"):
        catalog.create(_draft(images=["data/images/ghost/nope.webp"]))

    assert store.writes() == []


def test_update_accepts_only_the_products_own_images(catalog, store):
    pending = pending_from_files([("a.jpg", "image/jpeg", b"a"), ("b.jpg", "image/jpeg", b"b")])
    created = catalog.create(_draft(), pending)
    first, second = created.images

    reordered = catalog.update(created.id, _draft(images=[second, first]))
    assert reordered.images == [second, first]

    writes = len(store.writes())
    with pytest.raises(ValueError):
        catalog.update(
            created.id,
            _draft(images=[first, "data/images/chair/chair-1.webp"]),
            pending_from_files([("c.jpg", "image/jpeg", b"c")]),
        )
    assert len(store.writes()) == writes
    assert catalog.get(created.id).images == [second, first]
