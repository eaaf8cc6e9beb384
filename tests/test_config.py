from pathlib import Path

import pytest

from catalogstore.bootstrap import build_content_store, build_services
from catalogstore.config import env_bool, load_admin_config, load_store_config
from catalogstore.github import GitHubContentStore
from catalogstore.local import LocalContentStore


def test_defaults_to_local_backend(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_store_config(tmp_path / "admin", env={})

    assert config.backend == "local"
    assert config.local_root.resolve() == tmp_path.resolve()
    assert config.document_path == "data/products.json"
    assert config.images_root == "data/images"
    assert config.max_attempts == 3
    assert config.currency == "ARS"
    assert config.locale == "es-AR"
    assert config.admin_login == "local"


def test_github_backend_from_environment(tmp_path):
    config = load_store_config(
        tmp_path,
        env={
            "GITHUB_OWNER": "ana",
            "GITHUB_REPO": "mercadito",
            "GITHUB_BRANCH": "catalog",
            "GITHUB_TOKEN": "ghp_x",
            "CATALOG_TIMEOUT": "7.5",
            "CATALOG_CURRENCY": "usd",
        },
    )

    assert config.backend == "github"
    assert config.github_branch == "catalog"
    assert config.admin_login == "ana"
    assert config.timeout == 7.5
    assert config.currency == "USD"

    store = build_content_store(config)
    assert isinstance(store, GitHubContentStore)
    assert store.branch == "catalog"
    assert store.has_token


@pytest.mark.parametrize(
    "env",
    [
        {"CATALOG_BACKEND": "github"},
        {"CATALOG_CURRENCY": "EUR"},
        {"CATALOG_MAX_ATTEMPTS": "0"},
    ],
)
def test_invalid_settings_are_rejected(tmp_path, env):
    with pytest.raises(ValueError):
        load_store_config(tmp_path, env=env)


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    # Recorded by monkeypatch so the value load_dotenv exports is undone afterwards.
    monkeypatch.setenv("CATALOG_DOCUMENT_PATH", "unset")
    monkeypatch.delenv("CATALOG_DOCUMENT_PATH")
    for name in ("CATALOG_BACKEND", "GITHUB_OWNER", "GITHUB_REPO", "CATALOG_CURRENCY", "CATALOG_MAX_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    (tmp_path / ".env").write_text("CATALOG_DOCUMENT_PATH=catalog/items.json\n", encoding="utf-8")

    config = load_store_config(tmp_path)

    assert config.document_path == "catalog/items.json"


def test_admin_config(tmp_path):
    config = load_admin_config(
        tmp_path,
        env={
            "SECRET_KEY": "s3cret",
            "ALLOWED_ORIGINS": "https://shop.example, ,https://admin.example",
            "FORCE_TLS": "no",
            "CATALOG_LOCAL_ROOT": str(tmp_path / "content"),
        },
    )

    assert config.secret_key == "s3cret"
    assert config.allowed_origins == ("https://shop.example", "https://admin.example")
    assert config.force_tls is False
    assert config.token_vault_file == tmp_path / "tokens.enc"
    assert config.session_ttl_hours == 12
    assert config.store.local_root == tmp_path / "content"
    assert config.session_cookie_name == "mercadito_admin"


def test_env_bool():
    assert env_bool(None, True) is True
    assert env_bool("YES", False) is True
    assert env_bool("0", True) is False


def test_build_services_wires_local_store(tmp_path):
    config = load_store_config(
        tmp_path,
        env={"CATALOG_LOCAL_ROOT": str(tmp_path / "content"), "CATALOG_MAX_ATTEMPTS": "5", "CATALOG_CURRENCY": "USD"},
    )
    services = build_services(config)

    assert isinstance(services.store, LocalContentStore)
    assert services.store.root == Path(tmp_path / "content").resolve()
    assert services.repository.max_attempts == 5
    assert services.repository.load().meta.currency == "USD"
    assert services.assets.store is services.store
