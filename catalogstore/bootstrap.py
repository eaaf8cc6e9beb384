"""Composition root: turns a :class:`StoreConfig` into wired components.

Backend selection happens here and nowhere else; everything downstream only
sees the abstract :class:`ContentStore`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .assets import AssetManager
from .codec import CatalogMeta
from .config import StoreConfig
from .contents import ContentStore
from .github import GitHubContentStore
from .local import LocalContentStore
from .repository import CatalogRepository

LOGGER = logging.getLogger(__name__)


@dataclass
class CatalogServices:
    store: ContentStore
    repository: CatalogRepository
    assets: AssetManager
    admin_login: str


def build_content_store(config: StoreConfig) -> ContentStore:
    if config.backend == "github":
        LOGGER.info(
            "using GitHub content store %s/%s@%s",
            config.github_owner,
            config.github_repo,
            config.github_branch,
        )
        return GitHubContentStore(
            config.github_owner,
            config.github_repo,
            branch=config.github_branch,
            token=config.github_token or None,
            timeout=config.timeout,
            api_url=config.github_api_url,
        )
    LOGGER.info("using local content store at %s", config.local_root)
    return LocalContentStore(
        config.local_root,
        backups=config.local_backups,
        login=config.admin_login,
    )


def build_services(config: StoreConfig, store: ContentStore | None = None) -> CatalogServices:
    store = store or build_content_store(config)
    repository = CatalogRepository(
        store,
        config.document_path,
        max_attempts=config.max_attempts,
        default_meta=CatalogMeta(currency=config.currency, locale=config.locale),
    )
    assets = AssetManager(store, config.images_root)
    return CatalogServices(
        store=store,
        repository=repository,
        assets=assets,
        admin_login=config.admin_login,
    )
