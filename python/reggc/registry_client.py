"""
Registry client for Docker Registry HTTP API v2 operations.

This module provides the small subset of the registry API the garbage
collector needs: listing repositories, listing tags and deleting a tag.
"""

import hashlib
import json
import uuid
from typing import Dict, Iterator, List, Optional
from urllib.parse import urljoin

import requests

from reggc.utils.logging_utils import get_logger

logger = get_logger(__name__)

DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_CONFIG_V1 = "application/vnd.docker.container.image.v1+json"

# Page size requested from the catalog and tag list endpoints
PAGE_SIZE = 1000


class RegistryAPIError(Exception):
    """Raised when the registry answers with an unexpected status code"""

    def __init__(self, method: str, url: str, status_code: int, body: str = ""):
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        message = f"{method} {url} returned {status_code}"
        if body:
            message += f": {body.strip()}"
        super().__init__(message)


class RegistryClient:
    """Standardized client for a single registry endpoint."""

    def __init__(
        self,
        registry_url: str,
        tls: bool = False,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize RegistryClient.

        Args:
            registry_url: Registry address as host[:port], e.g. "registry:5000"
            tls: Use https instead of plain http
            timeout: Per-request timeout in seconds (None waits indefinitely)
            session: Optional pre-built requests session
        """
        self.registry_url = registry_url
        self.base_url = f"{'https' if tls else 'http'}://{registry_url}"
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path)

    def _request(self, method: str, url: str, expected: tuple, **kwargs) -> requests.Response:
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if response.status_code not in expected:
            raise RegistryAPIError(method, url, response.status_code, response.text)
        return response

    def _paginate(self, path: str, key: str) -> Iterator[str]:
        """Yield every entry of a paginated list endpoint, following Link headers."""
        url = self._url(path)
        params: Optional[Dict] = {"n": PAGE_SIZE}
        while url:
            response = self._request("GET", url, (200,), params=params)
            yield from response.json().get(key) or []
            next_link = response.links.get("next", {}).get("url")
            # The next link carries its own query string
            url = self._url(next_link) if next_link else None
            params = None

    def list_repositories(self) -> List[str]:
        """List every repository in the registry catalog."""
        return list(self._paginate("/v2/_catalog", "repositories"))

    def list_tags(self, repository: str) -> List[str]:
        """List all tags for a repository."""
        return list(self._paginate(f"/v2/{repository}/tags/list", "tags"))

    def delete_tag(self, repository: str, tag: str) -> None:
        """Delete a tag without touching other tags that share its manifest.

        Deleting a manifest by digest removes every tag pointing at it, so when
        the registry refuses to delete by tag name the tag is first moved to a
        unique placeholder manifest, which is then deleted by digest.
        """
        url = self._url(f"/v2/{repository}/manifests/{tag}")
        response = self.session.request("DELETE", url, timeout=self.timeout)
        if response.status_code in (200, 202):
            return
        if response.status_code not in (400, 405):
            raise RegistryAPIError("DELETE", url, response.status_code, response.text)

        logger.debug("registry refused tag delete (%s); using placeholder manifest", response.status_code)
        digest = self._push_placeholder(repository, tag)
        self._request("DELETE", self._url(f"/v2/{repository}/manifests/{digest}"), (200, 202))

    def _push_placeholder(self, repository: str, tag: str) -> str:
        """Point tag at a freshly generated manifest and return its digest."""
        config = json.dumps(
            {
                "architecture": "",
                "os": "",
                "config": {},
                "rootfs": {"type": "layers", "diff_ids": []},
                "comment": f"reggc placeholder {uuid.uuid4().hex}",
            },
            sort_keys=True,
        ).encode()
        config_digest = self._upload_blob(repository, config)

        manifest = json.dumps(
            {
                "schemaVersion": 2,
                "mediaType": DOCKER_MANIFEST_V2,
                "config": {"mediaType": DOCKER_CONFIG_V1, "size": len(config), "digest": config_digest},
                "layers": [],
            },
            sort_keys=True,
        ).encode()
        response = self._request(
            "PUT",
            self._url(f"/v2/{repository}/manifests/{tag}"),
            (201,),
            data=manifest,
            headers={"Content-Type": DOCKER_MANIFEST_V2},
        )
        return response.headers.get("Docker-Content-Digest") or _digest(manifest)

    def _upload_blob(self, repository: str, data: bytes) -> str:
        """Monolithic blob upload; returns the blob digest."""
        digest = _digest(data)
        start = self._request("POST", self._url(f"/v2/{repository}/blobs/uploads/"), (202,))
        location = self._url(start.headers["Location"])
        self._request(
            "PUT",
            location,
            (201,),
            params={"digest": digest},
            data=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        return digest


def _digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()
