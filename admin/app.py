"""Flask JSON API behind the catalog admin panel.

- The catalog lives in a single ``products.json`` inside a content repository
  (GitHub in production, a local folder during development). Every change is
  a commit guarded by the document's version, see ``catalogstore.repository``.
- Admins sign in with a GitHub token. It is checked against the configured
  login and kept server side in an encrypted vault; the cookie only carries a
  random session id.
- Product images are uploaded before the catalog change that references them
  and can be removed together with the product.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
from functools import wraps
from pathlib import Path
from typing import Literal, Optional

from flask import Flask, current_app, jsonify, request, session
from flask_cors import CORS
from flask_talisman import Talisman
from pydantic import BaseModel, Field, ValidationError, field_validator

from admin.services.product_store import (
    UPLOAD_PREFIX,
    ProductCatalog,
    ProductDraft,
    pending_from_files,
)
from admin.storage import TokenVault
from catalogstore.bootstrap import build_services
from catalogstore.codec import CatalogMeta, ContactLink, ProductRecord
from catalogstore.config import AdminConfig, env_bool, load_admin_config
from catalogstore.contents import ContentStore
from catalogstore.errors import (
    CatalogError,
    DuplicateSlug,
    ImageRejected,
    NotFound,
    ProductNotFound,
    StoreError,
    StoreTimeout,
    Unauthorized,
    UploadFailed,
    VersionConflict,
)
from catalogstore.images import validate_upload

BASE_DIR = Path(__file__).resolve().parent
LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
class ProductPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    price: int = Field(..., ge=0)
    description: str = Field(..., min_length=1)
    status: Literal["available", "sold"] = "available"
    currency: Optional[Literal["ARS", "USD"]] = None
    slug: Optional[str] = None
    images: list[str] = Field(default_factory=list)

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("slug", mode="before")
    @classmethod
    def blank_slug(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class MetaPayload(BaseModel):
    currency: Literal["ARS", "USD"] = "ARS"
    locale: str = Field("es-AR", min_length=2, max_length=35)
    contact: Optional[ContactLink] = None


class SessionPayload(BaseModel):
    token: str = Field(..., min_length=1)

    @field_validator("token", mode="before")
    @classmethod
    def strip_token(cls, value):
        return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _catalog() -> ProductCatalog:
    return current_app.extensions["catalog"]


def _store() -> ContentStore:
    return current_app.extensions["content_store"]


def _vault() -> TokenVault:
    return current_app.extensions["token_vault"]


def _product_json(product: ProductRecord) -> dict:
    return product.model_dump(mode="json", by_alias=True)


def _validation_message(err: ValidationError) -> str:
    parts = []
    for item in err.errors():
        location = ".".join(str(piece) for piece in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "; ".join(parts) or "Invalid payload"


def _json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _read_product_request() -> tuple[ProductPayload, list]:
    """Parse a JSON body or a multipart form with a ``product`` JSON field."""

    files = request.files.getlist("images")
    if request.mimetype == "multipart/form-data":
        raw = request.form.get("product") or "{}"
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"product field is not valid JSON: {exc.msg}") from exc
    else:
        data = _json_body()
    if not isinstance(data, dict):
        raise ValueError("product payload must be a JSON object")
    payload = ProductPayload(**data)

    uploads = []
    for storage in files:
        blob = storage.read()
        validate_upload(storage.filename or "", storage.mimetype or "", len(blob))
        uploads.append((storage.filename or "", storage.mimetype or "", blob))
    pending = pending_from_files(uploads)

    known = {image.temp_id for image in pending}
    for entry in payload.images:
        if entry.startswith(UPLOAD_PREFIX) and entry not in known:
            raise ValueError(f"{entry} does not match an uploaded file")
    return payload, pending


def _draft(payload: ProductPayload) -> ProductDraft:
    return ProductDraft(
        title=payload.title,
        price=payload.price,
        description=payload.description,
        status=payload.status,
        currency=payload.currency,
        slug=payload.slug,
        images=list(payload.images),
    )


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        record = _vault().get(session.get("sid"))
        if not record:
            return jsonify({"error": "Authentication required"}), 401
        _store().set_token(record.get("token"))
        return fn(*args, **kwargs)

    return wrapper


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
def create_app(
    config: AdminConfig | None = None,
    *,
    store: ContentStore | None = None,
    catalog: ProductCatalog | None = None,
    vault: TokenVault | None = None,
) -> Flask:
    config = config or load_admin_config(BASE_DIR)
    if catalog is None:
        services = build_services(config.store, store)
        catalog = ProductCatalog(services.repository, services.assets)
    store = catalog.repository.store
    vault = vault or TokenVault(
        config.token_vault_file,
        config.secret_key,
        ttl=datetime.timedelta(hours=config.session_ttl_hours),
    )

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=config.secret_key,
        SESSION_COOKIE_NAME=config.session_cookie_name,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=config.force_tls,
        PREFERRED_URL_SCHEME="https" if config.force_tls else "http",
        ADMIN_LOGIN=config.store.admin_login,
    )
    app.extensions["catalog"] = catalog
    app.extensions["content_store"] = store
    app.extensions["token_vault"] = vault

    CORS(
        app,
        resources={r"/api/*": {"origins": list(config.allowed_origins)}},
        supports_credentials=True,
    )
    Talisman(
        app,
        content_security_policy=None,
        force_https=config.force_tls,
        session_cookie_secure=config.force_tls,
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ValidationError)
    def handle_validation(err: ValidationError):
        return _error(_validation_message(err), 400)

    @app.errorhandler(ImageRejected)
    def handle_image(err: ImageRejected):
        return _error(str(err), 413 if err.too_large else 400)

    @app.errorhandler(ValueError)
    def handle_value(err: ValueError):
        return _error(str(err), 400)

    @app.errorhandler(Unauthorized)
    def handle_unauthorized(err: Unauthorized):
        return _error(str(err) or "Authentication required", 401)

    @app.errorhandler(ProductNotFound)
    @app.errorhandler(NotFound)
    def handle_not_found(err: Exception):
        return _error(str(err) or "Not found", 404)

    @app.errorhandler(VersionConflict)
    def handle_conflict(err: VersionConflict):
        return _error(str(err), 409)

    @app.errorhandler(DuplicateSlug)
    def handle_duplicate(err: DuplicateSlug):
        return _error(str(err), 409)

    @app.errorhandler(CatalogError)
    def handle_catalog(err: CatalogError):
        return _error(str(err), 400)

    @app.errorhandler(UploadFailed)
    def handle_upload(err: UploadFailed):
        if isinstance(err.__cause__, ImageRejected):
            return _error(str(err), 400)
        return _error(str(err), 502)

    @app.errorhandler(StoreTimeout)
    def handle_timeout(err: StoreTimeout):
        return _error(str(err), 504)

    @app.errorhandler(StoreError)
    def handle_store(err: StoreError):
        LOGGER.error("content store failure: %s", err)
        return _error(str(err) or "Content store unavailable", 502)


def _register_routes(app: Flask) -> None:
    # -----------------------------------------------------------------------
    # Session
    # -----------------------------------------------------------------------
    @app.route("/api/session", methods=["POST"])
    def open_session():
        payload = SessionPayload(**_json_body())
        # Verified on a private copy; only admin_required sets the shared token.
        verifier = _store().with_token(payload.token)
        try:
            user = verifier.current_user()
        except Unauthorized:
            return _error("Invalid token", 401)
        login = str(user.get("login") or "")
        if login != current_app.config["ADMIN_LOGIN"]:
            LOGGER.warning("rejected admin sign-in for %r", login)
            return _error("Access not authorised for this token", 403)
        session.clear()
        session["sid"] = _vault().open_session(payload.token, login)
        return jsonify({"login": login, "name": user.get("name")}), 201

    @app.route("/api/session", methods=["GET"])
    def current_session():
        record = _vault().get(session.get("sid"))
        if not record:
            return _error("Authentication required", 401)
        return jsonify({"login": record.get("login")})

    @app.route("/api/session", methods=["DELETE"])
    def close_session():
        _vault().close_session(session.get("sid"))
        session.clear()
        return jsonify({"ok": True})

    # -----------------------------------------------------------------------
    # Catalog
    # -----------------------------------------------------------------------
    @app.route("/api/catalog", methods=["GET"])
    @admin_required
    def get_catalog():
        catalog = _catalog()
        document = catalog.document()
        return jsonify(
            {
                **document.to_payload(),
                "version": catalog.repository.version,
            }
        )

    @app.route("/api/catalog/reload", methods=["POST"])
    @admin_required
    def reload_catalog():
        catalog = _catalog()
        document = catalog.reload()
        return jsonify({**document.to_payload(), "version": catalog.repository.version})

    @app.route("/api/products/<slug>", methods=["GET"])
    @admin_required
    def get_product(slug: str):
        product = _catalog().get_by_slug(slug)
        if product is None:
            return _error("Not found", 404)
        return jsonify(_product_json(product))

    @app.route("/api/products", methods=["POST"])
    @admin_required
    def create_product():
        payload, pending = _read_product_request()
        product = _catalog().create(_draft(payload), pending)
        return jsonify(_product_json(product)), 201

    @app.route("/api/products/<product_id>", methods=["PUT"])
    @admin_required
    def update_product(product_id: str):
        payload, pending = _read_product_request()
        product = _catalog().update(product_id, _draft(payload), pending)
        return jsonify(_product_json(product))

    @app.route("/api/products/<product_id>/status", methods=["POST"])
    @admin_required
    def toggle_product(product_id: str):
        product = _catalog().toggle_status(product_id)
        return jsonify(_product_json(product))

    @app.route("/api/products/<product_id>", methods=["DELETE"])
    @admin_required
    def delete_product(product_id: str):
        delete_images = env_bool(request.args.get("images"), False)
        product = _catalog().delete(product_id, delete_images=delete_images)
        return jsonify({"ok": True, "id": product.id, "slug": product.slug})

    @app.route("/api/meta", methods=["PUT"])
    @admin_required
    def update_meta():
        payload = MetaPayload(**_json_body())
        meta = _catalog().update_meta(CatalogMeta(**payload.model_dump()))
        return jsonify(meta.model_dump(mode="json"))

    @app.after_request
    def secure_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        return resp


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_admin_config(BASE_DIR)
    app = create_app(config)
    host = os.environ.get("API_HOST", "127.0.0.1")
    port = int(os.environ.get("API_PORT", "7890"))
    app.run(host=host, port=port, ssl_context="adhoc" if config.force_tls else None)


if __name__ == "__main__":
    main()
