import pytest

from admin.app import create_app
from admin.services.product_store import ProductCatalog
from admin.storage import TokenVault
from catalogstore.assets import AssetManager
from catalogstore.config import load_admin_config
from catalogstore.repository import CatalogRepository
from tests.conftest import fake_processor
from tests.fakes import MemoryContentStore

BASE_URL = "https://localhost"


class FixedClock:
    def __init__(self):
        self.ticks = 0

    def __call__(self):
        self.ticks += 1
        return f"2024-05-01T12:00:{self.ticks:02d}Z"


@pytest.fixture
def config(tmp_path):
    return load_admin_config(
        tmp_path,
        env={
            "CATALOG_BACKEND": "local",
            "CATALOG_LOCAL_ROOT": str(tmp_path / "content"),
            "ADMIN_LOGIN": "ana",
            "SECRET_KEY": "test-secret",
            "FORCE_TLS": "false",
        },
    )


@pytest.fixture
def store():
    return MemoryContentStore(login="ana")


@pytest.fixture
def catalog(store):
    repository = CatalogRepository(store, "data/products.json")
    assets = AssetManager(store, "data/images", processor=fake_processor)
    return ProductCatalog(repository, assets, clock=FixedClock())


@pytest.fixture
def vault(tmp_path):
    return TokenVault(tmp_path / "tokens.enc", "test-secret")


@pytest.fixture
def app(config, catalog, vault):
    app = create_app(config, catalog=catalog, vault=vault)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    response = client.post("/api/session", json={"token": "ghp_valid"}, base_url=BASE_URL)
    assert response.status_code == 201
    return client
