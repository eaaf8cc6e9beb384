"""Filesystem-backed content store for local development.

Mirrors the hosted API closely enough that the catalog code cannot tell the
difference: versions are content hashes, writes are compare-and-swap on that
hash, and directories vanish once their last file is removed. JSON documents
additionally keep rotating ``.bakN`` copies so that a bad edit on a developer
machine can be recovered by hand.
"""
from __future__ import annotations

import hashlib
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional

from .contents import ContentStore, DirEntry, StoredFile, normalise_path
from .errors import NotFound, StoreError, VersionConflict

LOGGER = logging.getLogger(__name__)


def content_version(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class LocalContentStore(ContentStore):
    """Content store rooted at a local directory."""

    def __init__(self, root: Path | str, *, backups: int = 2, login: str = "local"):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.backups = max(0, backups)
        self.login = login
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------
    def _resolve(self, path: str) -> Path:
        relative = normalise_path(path)
        target = (self.root / relative).resolve()
        if target != self.root and self.root not in target.parents:
            raise StoreError(f"invalid path: {path}")
        return target

    def _resolve_file(self, path: str) -> Path:
        target = self._resolve(path)
        if target == self.root:
            raise StoreError(f"invalid path: {path}")
        return target

    def _relative(self, target: Path) -> str:
        return target.relative_to(self.root).as_posix()

    def _backup_path(self, target: Path, index: int) -> Path:
        return target.with_suffix(target.suffix + f".bak{index}")

    def _rotate_backups(self, target: Path) -> None:
        if self.backups <= 0 or target.suffix != ".json":
            return
        for idx in range(self.backups, 0, -1):
            src = target if idx == 1 else self._backup_path(target, idx - 1)
            dest = self._backup_path(target, idx)
            if idx == 1 and src.exists():
                try:
                    dest.write_bytes(src.read_bytes())
                except OSError:
                    continue
            elif src.exists():
                try:
                    os.replace(src, dest)
                except OSError:
                    # Best effort; a failed rotation must not block the write.
                    continue

    def _write_atomic(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + ".tmp")
        try:
            with tmp_path.open("wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
        except OSError as exc:  # pragma: no cover - bubbled up to callers
            raise StoreError(str(exc)) from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self.root and directory.is_dir():
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    def _current_version(self, target: Path) -> Optional[str]:
        if not target.is_file():
            return None
        return content_version(target.read_bytes())

    # ------------------------------------------------------------------
    # ContentStore interface
    # ------------------------------------------------------------------
    def read(self, path: str) -> StoredFile:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound(f"{normalise_path(path)} not found")
        try:
            data = target.read_bytes()
        except OSError as exc:  # pragma: no cover - propagated for visibility
            raise StoreError(str(exc)) from exc
        return StoredFile(path=self._relative(target), content=data, version=content_version(data))

    def write(
        self,
        path: str,
        content: bytes,
        expected_version: Optional[str],
        *,
        message: str = "",
    ) -> str:
        target = self._resolve_file(path)
        with self._lock:
            current = self._current_version(target)
            if current != expected_version:
                if expected_version is None:
                    raise VersionConflict(f"{self._relative(target)} already exists")
                raise VersionConflict(f"{self._relative(target)} changed since it was read")
            if current is not None:
                self._rotate_backups(target)
            self._write_atomic(target, content)
        LOGGER.debug("wrote %s (%d bytes)", self._relative(target), len(content))
        return content_version(content)

    def remove(
        self,
        path: str,
        expected_version: Optional[str] = None,
        *,
        message: str = "",
    ) -> None:
        target = self._resolve_file(path)
        with self._lock:
            current = self._current_version(target)
            if current is None:
                raise NotFound(f"{normalise_path(path)} not found")
            if expected_version is not None and current != expected_version:
                raise VersionConflict(f"{self._relative(target)} changed since it was listed")
            try:
                target.unlink()
            except OSError as exc:  # pragma: no cover - bubbled up to callers
                raise StoreError(str(exc)) from exc
            self._prune_empty_dirs(target.parent)

    def list(self, directory: str) -> list[DirEntry]:
        base = self._resolve(directory)
        if not base.is_dir():
            return []
        entries: list[DirEntry] = []
        for child in sorted(base.iterdir(), key=lambda item: item.name):
            if child.is_dir():
                entries.append(DirEntry(path=self._relative(child), kind="dir"))
            elif child.is_file():
                entries.append(
                    DirEntry(
                        path=self._relative(child),
                        kind="file",
                        version=content_version(child.read_bytes()),
                    )
                )
        return entries

    def current_user(self) -> dict[str, Any]:
        return {"login": self.login, "name": f"{self.login} (local)"}
