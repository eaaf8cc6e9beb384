"""Encrypted storage for admin bearer tokens.

The GitHub token an admin signs in with grants write access to the catalog
repository, so it never travels in the session cookie. The cookie only holds a
random session id; the vault maps that id to the token, encrypted at rest with
Fernet and written atomically so an abrupt shutdown cannot leave a half
written file behind.
"""
from __future__ import annotations

import base64
import datetime as _dt
import hashlib
import json
import os
import secrets
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from catalogstore.errors import StoreError

DEFAULT_SESSION_TTL = _dt.timedelta(hours=12)


def _utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def _derive_key(secret: str) -> bytes:
    if not secret:
        secret = "mercadito-dev-secret"
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class TokenVault:
    """Fernet-encrypted JSON mapping of session id to token record."""

    def __init__(
        self,
        path: Path | str,
        secret: str,
        *,
        ttl: _dt.timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], _dt.datetime] = _utc_now,
    ):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.ttl = ttl
        self._clock = clock
        self._fernet = Fernet(_derive_key(secret))
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            blob = self.path.read_bytes()
        except OSError as exc:  # pragma: no cover - unlikely in tests
            raise StoreError(str(exc)) from exc
        if not blob:
            return {}
        try:
            decrypted = self._fernet.decrypt(blob)
        except InvalidToken:
            # Secret rotated or file tampered with: every session is void.
            return {}
        try:
            data = json.loads(decrypted.decode("utf-8"))
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            payload = json.dumps(data, indent=2).encode("utf-8")
            with tmp_path.open("wb") as fh:
                fh.write(self._fernet.encrypt(payload))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except OSError as exc:  # pragma: no cover - unlikely in tests
            raise StoreError(str(exc)) from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def _expired(self, record: Any) -> bool:
        if not isinstance(record, dict):
            return True
        try:
            created = _dt.datetime.fromisoformat(str(record.get("created_at")))
        except ValueError:
            return True
        if created.tzinfo is None:
            created = created.replace(tzinfo=_dt.timezone.utc)
        return self._clock() - created >= self.ttl

    def _prune(self, data: Dict[str, Any]) -> bool:
        stale = [key for key, record in data.items() if self._expired(record)]
        for key in stale:
            del data[key]
        return bool(stale)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def open_session(self, token: str, login: str) -> str:
        session_id = secrets.token_urlsafe(32)
        with self._lock:
            data = self._read()
            self._prune(data)
            data[session_id] = {
                "token": token,
                "login": login,
                "created_at": self._clock().isoformat(),
            }
            self._write(data)
        return session_id

    def get(self, session_id: str | None) -> Optional[Dict[str, Any]]:
        if not session_id:
            return None
        with self._lock:
            record = self._read().get(session_id)
        if self._expired(record):
            return None
        return record

    def close_session(self, session_id: str | None) -> None:
        if not session_id:
            return
        with self._lock:
            data = self._read()
            removed = data.pop(session_id, None) is not None
            if self._prune(data) or removed:
                self._write(data)
