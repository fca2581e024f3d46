"""Artifact sources: where the code and data artifacts are fetched from.

The loader never checks in advance that a deployment actually hosts its
artifacts; a source reports a missing or unreadable artifact as a
``ResourceLoadFailure`` at fetch time.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx

from tinysearch_bridge.errors import ResourceLoadFailure


if TYPE_CHECKING:
    from tinysearch_bridge.config import Settings


logger = logging.getLogger(__name__)


@runtime_checkable
class ArtifactSource(Protocol):
    """Fetches site artifacts by absolute site path (e.g. ``/memo_pub/x.wasm``)."""

    async def fetch(self, path: str) -> bytes: ...

    def locate(self, path: str) -> str: ...

    async def aclose(self) -> None: ...


class FilesystemArtifactSource:
    """Serve artifacts from a local directory acting as the site root."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

    def _resolve(self, path: str) -> Path:
        candidate = (self.root / path.lstrip("/")).resolve()
        if not candidate.is_relative_to(self.root):
            raise ResourceLoadFailure(
                f"Artifact path escapes the site root: {path}",
                location=str(candidate),
            )
        return candidate

    def locate(self, path: str) -> str:
        return str(self._resolve(path))

    async def fetch(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            payload = await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise ResourceLoadFailure(f"Artifact not found: {path}", location=str(target), cause=exc) from exc
        except PermissionError as exc:
            raise ResourceLoadFailure(f"Permission denied reading {path}", location=str(target), cause=exc) from exc
        except OSError as exc:
            raise ResourceLoadFailure(f"Failed to read {path}: {exc}", location=str(target), cause=exc) from exc

        logger.debug("Read %d bytes from %s", len(payload), target)
        return payload

    async def aclose(self) -> None:
        return None


class HttpArtifactSource:
    """Fetch artifacts from an http(s) origin with httpx."""

    def __init__(
        self,
        site_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.site_url = site_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            follow_redirects=True,
            headers={"Accept": "application/wasm, text/x-python, */*;q=0.8"},
        )

    def locate(self, path: str) -> str:
        return f"{self.site_url}/{path.lstrip('/')}"

    async def fetch(self, path: str) -> bytes:
        url = self.locate(path)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ResourceLoadFailure(
                f"HTTP {status} fetching {url}",
                location=url,
                cause=exc,
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise ResourceLoadFailure(f"Failed to fetch {url}: {exc}", location=url, cause=exc) from exc

        logger.debug("Fetched %d bytes from %s", len(response.content), url)
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpArtifactSource:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def build_artifact_source(settings: Settings) -> ArtifactSource:
    """Create the artifact source matching ``settings.site_root``."""
    if settings.is_remote():
        return HttpArtifactSource(settings.site_root, timeout=settings.http_timeout)
    return FilesystemArtifactSource(settings.site_root)
