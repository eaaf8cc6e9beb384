"""Configuration for the catalog store and the admin service.

Values come from the process environment after ``<base_dir>/.env`` has been
loaded, so installers and tests can prime them without touching application
internals. Both dataclasses are frozen: configuration is read once at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal, Mapping
import os

from dotenv import load_dotenv

from .codec import CURRENCIES, DEFAULT_CURRENCY, DEFAULT_LOCALE

Backend = Literal["github", "local"]


@dataclass(frozen=True)
class StoreConfig:
    """Where the catalog document and its images live."""

    backend: Backend
    document_path: str
    images_root: str
    local_root: Path
    local_backups: int
    github_owner: str
    github_repo: str
    github_branch: str
    github_api_url: str
    github_token: str
    admin_login: str
    timeout: float
    max_attempts: int
    currency: str
    locale: str


@dataclass(frozen=True)
class AdminConfig:
    """Strongly typed configuration for the admin service."""

    base_dir: Path
    secret_key: str
    token_vault_file: Path
    session_ttl_hours: float
    allowed_origins: tuple[str, ...]
    force_tls: bool
    store: StoreConfig

    @property
    def session_cookie_name(self) -> str:
        return "mercadito_admin"


def env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _coerce_origins(raw: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(raw, str):
        items = [piece.strip() for piece in raw.split(",")]
    else:
        items = [piece.strip() for piece in raw]
    return tuple(filter(None, items)) or (
        "https://localhost",
        "https://127.0.0.1",
        "http://localhost",
        "http://127.0.0.1",
    )


def _environment(base_dir: Path, env: Mapping[str, str] | None) -> dict[str, str]:
    if env is None:
        load_dotenv(base_dir / ".env")
        return dict(os.environ)
    return dict(env)


def load_store_config(base_dir: Path, env: Mapping[str, str] | None = None) -> StoreConfig:
    """Build a :class:`StoreConfig`; ``env`` defaults to ``os.environ`` + ``.env``."""

    base_dir = Path(base_dir)
    env_map = _environment(base_dir, env)

    owner = env_map.get("GITHUB_OWNER", "").strip()
    repo = env_map.get("GITHUB_REPO", "").strip()
    backend = env_map.get("CATALOG_BACKEND", "").strip().lower()
    if backend not in ("github", "local"):
        backend = "github" if owner and repo else "local"
    if backend == "github" and not (owner and repo):
        raise ValueError("CATALOG_BACKEND=github requires GITHUB_OWNER and GITHUB_REPO")

    currency = env_map.get("CATALOG_CURRENCY", DEFAULT_CURRENCY).strip().upper()
    if currency not in CURRENCIES:
        raise ValueError(f"CATALOG_CURRENCY must be one of {', '.join(CURRENCIES)}")

    max_attempts = int(env_map.get("CATALOG_MAX_ATTEMPTS", "3"))
    if max_attempts < 1:
        raise ValueError("CATALOG_MAX_ATTEMPTS must be at least 1")

    local_root = env_map.get("CATALOG_LOCAL_ROOT", "").strip()

    return StoreConfig(
        backend=backend,  # type: ignore[arg-type]
        document_path=env_map.get("CATALOG_DOCUMENT_PATH", "data/products.json").strip(),
        images_root=env_map.get("CATALOG_IMAGES_ROOT", "data/images").strip(),
        local_root=Path(local_root) if local_root else Path.cwd(),
        local_backups=int(env_map.get("CATALOG_LOCAL_BACKUPS", "2")),
        github_owner=owner,
        github_repo=repo,
        github_branch=env_map.get("GITHUB_BRANCH", "main").strip() or "main",
        github_api_url=env_map.get("GITHUB_API_URL", "https://api.github.com").strip(),
        github_token=env_map.get("GITHUB_TOKEN", "").strip(),
        admin_login=(env_map.get("ADMIN_LOGIN") or owner or "local").strip(),
        timeout=float(env_map.get("CATALOG_TIMEOUT", "15")),
        max_attempts=max_attempts,
        currency=currency,
        locale=env_map.get("CATALOG_LOCALE", DEFAULT_LOCALE).strip() or DEFAULT_LOCALE,
    )


def load_admin_config(base_dir: Path, env: Mapping[str, str] | None = None) -> AdminConfig:
    """Load admin configuration from the given base directory and env mapping."""

    base_dir = Path(base_dir)
    env_map = _environment(base_dir, env)
    vault = env_map.get("TOKEN_VAULT_FILE", "").strip()

    return AdminConfig(
        base_dir=base_dir,
        secret_key=env_map.get("SECRET_KEY", "dev-change-me"),
        token_vault_file=Path(vault) if vault else base_dir / "tokens.enc",
        session_ttl_hours=float(env_map.get("SESSION_TTL_HOURS", "12")),
        allowed_origins=_coerce_origins(
            env_map.get(
                "ALLOWED_ORIGINS",
                "https://localhost,https://127.0.0.1,http://localhost,http://127.0.0.1",
            )
        ),
        force_tls=env_bool(env_map.get("FORCE_TLS"), True),
        store=load_store_config(base_dir, env_map),
    )
