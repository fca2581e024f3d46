"""Page-session bootstrap: load the module and publish its query export.

Sequence: obtain export -> publish binding -> await instantiation -> mark ready.
Publication and readiness are separate events; callers that need an answer
rather than an early reference await ``ready()``.
"""

from __future__ import annotations

import asyncio
from collections.abc import MutableMapping
import logging
from typing import Any

from tinysearch_bridge.adapters.artifact_source import ArtifactSource, build_artifact_source
from tinysearch_bridge.config import Settings
from tinysearch_bridge.domain.model import ModuleHandle
from tinysearch_bridge.errors import DoubleBootstrapError, InstantiationFailure, LoadAbortedError, LoadError
from tinysearch_bridge.service_layer.global_bridge import GlobalBridge, SearchProxy
from tinysearch_bridge.service_layer.module_loader import ModuleLoader


logger = logging.getLogger(__name__)


class SearchBootstrap:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        source: ArtifactSource | None = None,
        namespace: MutableMapping[str, Any] | None = None,
        loader: ModuleLoader | None = None,
        bridge: GlobalBridge | None = None,
    ) -> None:
        self.settings = settings or Settings()
        if loader is not None:
            self.source = loader.source
            self._owns_source = False
        else:
            self.source = source or build_artifact_source(self.settings)
            self._owns_source = source is None
        self.loader = loader or ModuleLoader(
            self.source,
            engine_name=self.settings.engine_name,
            timeout=self.settings.load_timeout_seconds,
        )
        self.bridge = bridge or GlobalBridge(namespace)
        self._task: asyncio.Task | None = None
        self._started = False

    @property
    def identifier(self) -> str:
        return self.settings.global_name

    def _claim(self) -> None:
        if self._started:
            raise DoubleBootstrapError("Search bootstrap already started for this session")
        self.bridge.ensure_bindable(self.identifier)
        self._started = True

    async def run(self) -> SearchProxy:
        """Run the bootstrap and wait for it.

        Raises:
            LoadError: Propagated to the initiator after being recorded on the
                bridge, so callers of the global see it too.
            DoubleBootstrapError: The bootstrap or the global was already set up.
        """
        self._claim()
        return await self._run()

    def start(self) -> asyncio.Task:
        """Schedule the bootstrap in the background and return its task."""
        self._claim()
        self._task = asyncio.create_task(self._run_in_background(), name=f"tinysearch-bootstrap:{self.identifier}")
        return self._task

    async def _run(self) -> SearchProxy:
        def publish(handle: ModuleHandle) -> None:
            assert handle.query is not None
            self.bridge.bind(self.identifier, handle.query)

        try:
            await self.loader.load(self.settings.get_base_path(), on_export=publish)
        except LoadError as error:
            self._settle_failed(error)
            raise
        except asyncio.CancelledError as exc:
            handle = self.loader.handle
            if handle is not None and isinstance(handle.error, LoadAbortedError):
                self._settle_failed(handle.error)
            else:
                self._settle_failed(LoadAbortedError("Search bootstrap was cancelled", cause=exc))
            raise
        except Exception as exc:
            error = InstantiationFailure(f"Search bootstrap failed: {exc}", cause=exc)
            self._settle_failed(error)
            raise error from exc

        self.bridge.mark_ready()
        assert self.bridge.proxy is not None
        return self.bridge.proxy

    def _settle_failed(self, error: LoadError) -> None:
        # Waiters on ready() must always be released, whatever stopped the load
        if not self.bridge.state.is_terminal:
            self.bridge.mark_failed(error)

    async def _run_in_background(self) -> SearchProxy | None:
        try:
            return await self._run()
        except LoadError as error:
            # Already recorded on the bridge; ready() and the global raise it
            logger.warning(
                "Search bootstrap for %s failed (%s); search is unavailable this session",
                self.identifier,
                error.kind,
            )
            return None

    async def ready(self, timeout: float | None = None) -> SearchProxy:
        return await self.bridge.ready(timeout)

    def status(self) -> dict[str, Any]:
        handle = self.loader.handle
        return {
            "identifier": self.identifier,
            "deployment": self.settings.deployment,
            "base_path": self.settings.get_base_path(),
            "site_root": self.settings.site_root,
            "module": handle.to_dict() if handle is not None else None,
            "binding": self.bridge.status(),
        }

    async def aclose(self) -> None:
        """Release the artifact source once loading has settled."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        if self._owns_source:
            await self.source.aclose()

    async def __aenter__(self) -> SearchBootstrap:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def bootstrap(
    settings: Settings | None = None,
    *,
    namespace: MutableMapping[str, Any] | None = None,
    source: ArtifactSource | None = None,
) -> SearchBootstrap:
    """Start the search bootstrap in the running event loop.

    Usage:
        session = bootstrap(Settings(site_root="public", deployment="published"))
        search = await session.ready()
        results = search("term")
    """
    session = SearchBootstrap(settings, namespace=namespace, source=source)
    session.start()
    return session
