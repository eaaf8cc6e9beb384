"""Content store backed by the GitHub repository contents API.

Every write is a commit on the configured branch and the version token is the
blob SHA GitHub reports for the path. The API already implements the
compare-and-swap the catalog needs: a PUT carrying a stale ``sha`` is
rejected with 409, and a PUT without ``sha`` on an existing path with 422.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Optional
from urllib.parse import quote

import requests

from .codec import from_base64, to_base64
from .contents import ContentStore, DirEntry, StoredFile, normalise_path
from .errors import NotFound, StoreError, StoreTimeout, Unauthorized, VersionConflict

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"


def _error_message(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    text = (response.text or "").strip()
    return text or f"Error {response.status_code}"


class GitHubContentStore(ContentStore):
    """Read and commit files in a single branch of a GitHub repository."""

    def __init__(
        self,
        owner: str,
        repo: str,
        *,
        branch: str = "main",
        token: Optional[str] = None,
        timeout: float = 15.0,
        api_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
    ):
        if not owner or not repo:
            raise ValueError("owner and repo are required")
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.timeout = timeout
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self._default_token = token or None
        self._local = threading.local()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def set_token(self, token: Optional[str]) -> None:
        """Install ``token`` for calls made from the current thread.

        Each request thread carries its own credential; ``None`` falls back to
        the token given at construction.
        """

        self._local.token = token or None

    @property
    def token(self) -> Optional[str]:
        return getattr(self._local, "token", None) or self._default_token

    @property
    def has_token(self) -> bool:
        return self.token is not None

    def with_token(self, token: Optional[str]) -> GitHubContentStore:
        return GitHubContentStore(
            self.owner,
            self.repo,
            branch=self.branch,
            token=token,
            timeout=self.timeout,
            api_url=self.api_url,
            session=self.session,
        )

    def _contents_url(self, path: str) -> str:
        encoded = "/".join(quote(segment, safe="") for segment in normalise_path(path).split("/"))
        return f"{self.api_url}/repos/{self.owner}/{self.repo}/contents/{encoded}"

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        token = self.token
        if not token:
            raise Unauthorized("GitHub token not configured")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "Authorization": f"Bearer {token}",
        }
        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            raise StoreTimeout(
                f"GitHub did not respond within {self.timeout:g} seconds"
            ) from exc
        except requests.RequestException as exc:
            raise StoreError(f"GitHub request failed: {exc}") from exc
        if response.ok:
            return response

        status = response.status_code
        message = _error_message(response)
        if status == 401:
            raise Unauthorized(message)
        if status == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                raise StoreError(f"GitHub rate limit exceeded: {message}")
            raise Unauthorized(message)
        if status == 404:
            raise NotFound(message)
        if status == 409:
            raise VersionConflict(message)
        raise StoreError(message, status=status)

    # ------------------------------------------------------------------
    # ContentStore interface
    # ------------------------------------------------------------------
    def read(self, path: str) -> StoredFile:
        response = self._request("GET", self._contents_url(path), params={"ref": self.branch})
        data = response.json()
        if not isinstance(data, dict) or data.get("type") != "file":
            raise NotFound(f"{normalise_path(path)} is not a file")
        sha = str(data["sha"])
        if data.get("encoding") == "none" or (not data.get("content") and data.get("size")):
            # Files above the contents API inline limit come back without content.
            content = self._read_blob(sha)
        else:
            content = from_base64(data.get("content") or "")
        return StoredFile(path=normalise_path(path), content=content, version=sha)

    def _read_blob(self, sha: str) -> bytes:
        url = f"{self.api_url}/repos/{self.owner}/{self.repo}/git/blobs/{sha}"
        data = self._request("GET", url).json()
        return from_base64(data.get("content") or "")

    def write(
        self,
        path: str,
        content: bytes,
        expected_version: Optional[str],
        *,
        message: str = "",
    ) -> str:
        body: dict[str, Any] = {
            "message": message or f"Update {normalise_path(path)}",
            "content": to_base64(content),
            "branch": self.branch,
        }
        if expected_version is not None:
            body["sha"] = expected_version
        try:
            response = self._request("PUT", self._contents_url(path), json=body)
        except StoreError as exc:
            if exc.status == 422 and expected_version is None:
                raise VersionConflict(
                    f"{normalise_path(path)} already exists: {exc}"
                ) from exc
            raise
        data = response.json()
        LOGGER.debug("committed %s on %s", normalise_path(path), self.branch)
        return str(data["content"]["sha"])

    def remove(
        self,
        path: str,
        expected_version: Optional[str] = None,
        *,
        message: str = "",
    ) -> None:
        if expected_version is None:
            expected_version = self.read(path).version
        body = {
            "message": message or f"Delete {normalise_path(path)}",
            "sha": expected_version,
            "branch": self.branch,
        }
        try:
            self._request("DELETE", self._contents_url(path), json=body)
        except StoreError as exc:
            if exc.status == 422:
                raise VersionConflict(str(exc)) from exc
            raise

    def list(self, directory: str) -> list[DirEntry]:
        try:
            response = self._request(
                "GET", self._contents_url(directory), params={"ref": self.branch}
            )
        except NotFound:
            return []
        data = response.json()
        if not isinstance(data, list):
            return []
        entries: list[DirEntry] = []
        for item in data:
            kind = item.get("type")
            if kind not in ("file", "dir"):
                continue
            entries.append(
                DirEntry(
                    path=str(item.get("path")),
                    kind=kind,
                    version=item.get("sha") if kind == "file" else None,
                )
            )
        return entries

    def current_user(self) -> dict[str, Any]:
        return self._request("GET", f"{self.api_url}/user").json()
