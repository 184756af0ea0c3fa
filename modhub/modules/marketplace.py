"""
Marketplace Client.

This module talks to the remote module marketplace over HTTP.

Key features:
- Release lookup: GET {url}/modules/{name}
- Streaming archive download to a local file
- Optional bearer token authentication
- Configurable timeout
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from modhub.modules.manifest import is_valid_module_name

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Raised when the marketplace cannot serve a request."""

    pass


@dataclass(frozen=True)
class ModuleRelease:
    """A downloadable release advertised by the marketplace."""

    name: str
    version: str
    download_url: str


class MarketplaceClient:
    """
    Synchronous marketplace client.

    An empty ``base_url`` disables release lookups; absolute archive URLs
    can still be downloaded.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        token: str = "",
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Marketplace API base URL
            timeout: Request timeout in seconds
            token: Bearer token (empty sends no Authorization header)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.Client(
            timeout=timeout,
            headers=headers,
            follow_redirects=True,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "MarketplaceClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_release(self, name: str) -> ModuleRelease:
        """
        Look up the latest release of a module.

        Raises:
            MarketplaceError: If the marketplace is disabled, unreachable,
                does not know the module or answers with malformed data
        """
        if not self.enabled:
            raise MarketplaceError("Marketplace is disabled (no URL configured)")
        if not is_valid_module_name(name):
            raise MarketplaceError(f"Invalid module name: {name}")

        try:
            response = self.client.get(f"{self.base_url}/modules/{name}")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise MarketplaceError(f"Module {name} is not available on the marketplace") from e
            raise MarketplaceError(f"HTTP error: {e}") from e
        except httpx.HTTPError as e:
            raise MarketplaceError(f"HTTP error: {e}") from e
        except ValueError as e:
            raise MarketplaceError(f"Malformed marketplace response: {e}") from e

        if not isinstance(data, dict):
            raise MarketplaceError("Malformed marketplace response: expected an object")
        try:
            release = ModuleRelease(
                name=str(data["name"]),
                version=str(data["version"]),
                download_url=str(data["download_url"]),
            )
        except KeyError as e:
            raise MarketplaceError(f"Malformed marketplace response: missing {e}") from e

        if release.name != name:
            raise MarketplaceError(
                f"Marketplace answered for {release.name} when asked for {name}"
            )
        return release

    def download(self, url: str, destination: Path) -> Path:
        """
        Stream an archive to ``destination``.

        Raises:
            MarketplaceError: If the download fails
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Downloading %s to %s", url, destination)
        try:
            with self.client.stream("GET", url) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise MarketplaceError(f"Download of {url} failed: {e}") from e
        except OSError as e:
            raise MarketplaceError(f"Cannot write {destination}: {e}") from e
        return destination
