"""Serialisation of the catalog document.

The document lives in a version-controlled repository, so ``encode`` produces
indented JSON that diffs cleanly. ``decode`` never rejects a document because
of one bad record: everything goes through :func:`sanitize`, which coerces
each field to something the storefront can render. A hand-edited or
half-migrated ``products.json`` therefore always loads.
"""

from __future__ import annotations

import base64
import json
import math
import re
import unicodedata
import uuid
from typing import Any, Iterable, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import MalformedDocument

CURRENCIES = ("ARS", "USD")
DEFAULT_CURRENCY = "ARS"
DEFAULT_LOCALE = "es-AR"
CONTACT_TYPES = ("whatsapp", "email", "link")
UNTITLED = "Producto sin titulo"
FALLBACK_SLUG = "producto"

_ID_NAMESPACE = uuid.UUID("7b0c1a52-31b4-4d0e-9a0c-5c9a8e1f3d21")


class ContactLink(BaseModel):
    type: Literal["whatsapp", "email", "link"]
    value: str = Field(..., min_length=1)
    label: str = ""


class CatalogMeta(BaseModel):
    currency: Literal["ARS", "USD"] = DEFAULT_CURRENCY
    locale: str = DEFAULT_LOCALE
    contact: Optional[ContactLink] = None


class ProductRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    slug: str
    title: str
    price: int = Field(0, ge=0)
    currency: Literal["ARS", "USD"] = DEFAULT_CURRENCY
    status: Literal["available", "sold"] = "available"
    images: list[str] = Field(default_factory=list)
    description: str = ""
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class CatalogDocument(BaseModel):
    products: list[ProductRecord] = Field(default_factory=list)
    meta: CatalogMeta = Field(default_factory=CatalogMeta)

    def find(self, product_id: str) -> Optional[ProductRecord]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None

    def find_slug(self, slug: str) -> Optional[ProductRecord]:
        for product in self.products:
            if product.slug == slug:
                return product
        return None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def empty_document(meta: CatalogMeta | None = None) -> CatalogDocument:
    return CatalogDocument(products=[], meta=meta.model_copy() if meta else CatalogMeta())


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------
def slugify(value: Any) -> str:
    """Return a URL-safe, lower-case slug for ``value``."""

    text = unicodedata.normalize("NFD", str(value if value is not None else ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^a-zA-Z0-9\s-]", "", text).strip()
    return re.sub(r"[\s-]+", "-", text).strip("-").lower()


def ensure_unique_slug(
    slug: str,
    products: Iterable[ProductRecord],
    exclude_id: Optional[str] = None,
) -> str:
    """Return ``slug`` or the first ``slug-N`` not used by another product."""

    base = slugify(slug) or FALLBACK_SLUG
    taken = {product.slug for product in products if product.id != exclude_id}
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def duplicate_slugs(products: Iterable[ProductRecord]) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for product in products:
        if product.slug in seen and product.slug not in duplicates:
            duplicates.append(product.slug)
        seen.add(product.slug)
    return duplicates


# ---------------------------------------------------------------------------
# Sanitisation
# ---------------------------------------------------------------------------
def _coerce_price(raw: Any) -> int:
    if isinstance(raw, bool) or raw is None:
        return 0
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, int(math.floor(value + 0.5)))


def _coerce_text(raw: Any) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


def _sanitize_contact(raw: Any) -> Optional[ContactLink]:
    if not isinstance(raw, Mapping):
        return None
    kind = raw.get("type")
    value = raw.get("value")
    if kind not in CONTACT_TYPES or not isinstance(value, str) or not value.strip():
        return None
    label = raw.get("label")
    return ContactLink(type=kind, value=value.strip(), label=label if isinstance(label, str) else "")


def sanitize_meta(raw: Any) -> CatalogMeta:
    data = raw if isinstance(raw, Mapping) else {}
    currency = data.get("currency")
    locale = data.get("locale")
    return CatalogMeta(
        currency=currency if currency in CURRENCIES else DEFAULT_CURRENCY,
        locale=locale.strip() if isinstance(locale, str) and locale.strip() else DEFAULT_LOCALE,
        contact=_sanitize_contact(data.get("contact")),
    )


def sanitize_product(raw: Mapping[str, Any], position: int, default_currency: str) -> ProductRecord:
    title = raw.get("title")
    title = str(title).strip() if title is not None and str(title).strip() else UNTITLED
    slug = slugify(raw.get("slug") or raw.get("title") or "") or FALLBACK_SLUG
    product_id = _coerce_text(raw.get("id")) or str(uuid.uuid5(_ID_NAMESPACE, f"{slug}:{position}"))
    images = raw.get("images")
    description = raw.get("description")
    created_at = _coerce_text(raw.get("createdAt"))
    currency = raw.get("currency")
    return ProductRecord(
        id=product_id,
        slug=slug,
        title=title,
        price=_coerce_price(raw.get("price")),
        currency=currency if currency in CURRENCIES else default_currency,
        status="sold" if raw.get("status") == "sold" else "available",
        images=[str(item) for item in images] if isinstance(images, list) else [],
        description=description if isinstance(description, str) else "",
        created_at=created_at,
        updated_at=_coerce_text(raw.get("updatedAt")) or created_at,
    )


def sanitize(raw: Any) -> CatalogDocument:
    """Normalise a parsed document (or a model) into a valid ``CatalogDocument``."""

    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json", by_alias=True)
    if isinstance(raw, list):
        # Older catalogs stored a bare list of products.
        raw = {"products": raw}
    if not isinstance(raw, Mapping):
        raw = {}

    meta = sanitize_meta(raw.get("meta"))
    items = raw.get("products")
    products: list[ProductRecord] = []
    for position, item in enumerate(items if isinstance(items, list) else []):
        if not isinstance(item, Mapping):
            continue
        product = sanitize_product(item, position, meta.currency)
        unique = ensure_unique_slug(product.slug, products)
        if unique != product.slug:
            product = product.model_copy(update={"slug": unique})
        products.append(product)
    return CatalogDocument(products=products, meta=meta)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------
def encode(document: CatalogDocument | Mapping[str, Any]) -> bytes:
    """Serialise ``document`` as indented UTF-8 JSON."""

    if isinstance(document, CatalogDocument):
        payload: Any = document.to_payload()
    else:
        payload = dict(document)
    return (json.dumps(payload, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def decode(data: bytes) -> CatalogDocument:
    """Parse stored bytes; malformed records are repaired, not rejected."""

    if not data or not data.strip():
        return empty_document()
    try:
        parsed = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedDocument(f"catalog document is not valid JSON: {exc}") from exc
    return sanitize(parsed)


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(text: str) -> bytes:
    # The contents API wraps base64 payloads every 60 characters.
    return base64.b64decode("".join(str(text or "").split()))
