"""Abstract content store shared by the hosted and local backends.

The catalog only ever talks to a path-addressed store with four operations
(read, write, remove, list). Versions are opaque strings identifying the
exact bytes stored at a path; ``None`` means "the path is not expected to
exist".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal, Optional


@dataclass(frozen=True)
class StoredFile:
    path: str
    content: bytes
    version: str


@dataclass(frozen=True)
class DirEntry:
    path: str
    kind: Literal["file", "dir"]
    version: Optional[str] = None


class ContentStore(ABC):
    """Versioned, path-addressed storage backend."""

    @abstractmethod
    def read(self, path: str) -> StoredFile:
        """Return the bytes and version at ``path``.

        Raises ``NotFound`` when nothing is stored there.
        """

    @abstractmethod
    def write(
        self,
        path: str,
        content: bytes,
        expected_version: Optional[str],
        *,
        message: str = "",
    ) -> str:
        """Store ``content`` at ``path`` and return the new version.

        ``expected_version`` must match the current version; ``None`` requires
        that the path does not exist yet. Raises ``VersionConflict`` otherwise.
        """

    @abstractmethod
    def remove(
        self,
        path: str,
        expected_version: Optional[str] = None,
        *,
        message: str = "",
    ) -> None:
        """Delete ``path``; raises ``NotFound`` or ``VersionConflict``."""

    @abstractmethod
    def list(self, directory: str) -> list[DirEntry]:
        """Return the entries of ``directory`` (empty when it is missing)."""

    @abstractmethod
    def current_user(self) -> dict[str, Any]:
        """Return the identity behind the configured credential."""

    def set_token(self, token: Optional[str]) -> None:
        """Install the bearer token used for subsequent calls."""

    def with_token(self, token: Optional[str]) -> ContentStore:
        """Return a store that authenticates with ``token``, leaving this one as is.

        Backends without credentials return themselves.
        """

        return self


def normalise_path(path: str) -> str:
    """Strip surrounding slashes and collapse empty segments."""

    return "/".join(segment for segment in str(path).split("/") if segment)
