import json

import pytest

from catalogstore.assets import AssetManager
from catalogstore.images import ProcessedImage
from catalogstore.repository import CatalogRepository
from tests.fakes import MemoryContentStore

DOCUMENT_PATH = "data/products.json"


def document_bytes(products, meta=None) -> bytes:
    payload = {"products": products, "meta": meta or {"currency": "ARS", "locale": "es-AR", "contact": None}}
    return (json.dumps(payload, indent=2) + "\n").encode("utf-8")


def fake_processor(image):
    return ProcessedImage(data=b"processed:" + image.data, extension="webp")


@pytest.fixture
def store():
    return MemoryContentStore()


@pytest.fixture
def repository(store):
    return CatalogRepository(store, DOCUMENT_PATH)


@pytest.fixture
def assets(store):
    return AssetManager(store, "data/images", processor=fake_processor)
