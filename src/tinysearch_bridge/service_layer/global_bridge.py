"""Publish the search export under a well-known global name.

The bridge writes exactly one name into the host namespace (``builtins`` by
default, so any script can call ``tinysearch("term")`` without importing
anything) and owns the readiness contract callers rely on:

- ``proxy(text)`` forwards to the engine once the module is ready, raises
  ``NotReadyError`` while it is loading and the ``LoadError`` after a failure.
- ``await bridge.ready()`` / ``await proxy.ready()`` resolve to the proxy once
  ready, or raise the ``LoadError``.
- ``await proxy.asearch(text)`` defers the call until the module settles.
"""

from __future__ import annotations

import asyncio
import builtins
from collections.abc import Callable, MutableMapping
import logging
from typing import Any

from tinysearch_bridge.domain.model import GlobalBinding, ModuleState
from tinysearch_bridge.errors import DoubleBootstrapError, InvalidStateTransitionError, LoadError, NotReadyError
from tinysearch_bridge.observability.context import bind_identifier
from tinysearch_bridge.observability.metrics import BINDING_READY, QUERY_COUNT


logger = logging.getLogger(__name__)


class SearchProxy:
    """The callable published under the global identifier.

    Wraps the engine's query export, which stays the same function for the
    whole session. Results are returned exactly as the engine produced them.
    """

    __slots__ = ("_bridge", "_export", "identifier")

    def __init__(self, bridge: GlobalBridge, identifier: str, export: Callable[[str], Any]) -> None:
        self._bridge = bridge
        self._export = export
        self.identifier = identifier

    @property
    def state(self) -> ModuleState:
        return self._bridge.state

    @property
    def export(self) -> Callable[[str], Any]:
        return self._export

    def __call__(self, text: str) -> Any:
        state = self._bridge.state
        if state is ModuleState.FAILED:
            QUERY_COUNT.labels(identifier=self.identifier, outcome="rejected").inc()
            error = self._bridge.error
            assert error is not None
            # Shared instance; drop frames left by earlier raises
            raise error.with_traceback(None)
        if state is not ModuleState.READY:
            QUERY_COUNT.labels(identifier=self.identifier, outcome="rejected").inc()
            raise NotReadyError(f"{self.identifier} is still loading; await ready() before calling it")

        try:
            results = self._export(text)
        except Exception:
            QUERY_COUNT.labels(identifier=self.identifier, outcome="engine_error").inc()
            raise
        QUERY_COUNT.labels(identifier=self.identifier, outcome="ok").inc()
        return results

    async def ready(self, timeout: float | None = None) -> SearchProxy:
        return await self._bridge.ready(timeout)

    async def asearch(self, text: str, *, timeout: float | None = None) -> Any:
        """Wait for the module to settle, then run the query."""
        await self._bridge.ready(timeout)
        return self(text)

    def __repr__(self) -> str:
        return f"<SearchProxy {self.identifier} state={self.state.value}>"


class GlobalBridge:
    """Sole writer of the global search binding."""

    def __init__(self, namespace: MutableMapping[str, Any] | None = None) -> None:
        self.namespace: MutableMapping[str, Any] = namespace if namespace is not None else builtins.__dict__
        self._binding: GlobalBinding | None = None
        self._proxy: SearchProxy | None = None
        self._state = ModuleState.UNLOADED
        self._error: LoadError | None = None
        self._settled = asyncio.Event()

    @property
    def state(self) -> ModuleState:
        return self._state

    @property
    def error(self) -> LoadError | None:
        return self._error

    @property
    def binding(self) -> GlobalBinding | None:
        return self._binding

    @property
    def proxy(self) -> SearchProxy | None:
        return self._proxy

    def ensure_bindable(self, identifier: str) -> None:
        """Raise ``DoubleBootstrapError`` if ``identifier`` cannot be published."""
        if self._binding is not None:
            logger.critical(
                "Refusing to bind %s: this bridge already published %s",
                identifier,
                self._binding.identifier,
            )
            raise DoubleBootstrapError(
                f"Search function already bound as {self._binding.identifier!r}; bind may only be called once"
            )
        if identifier in self.namespace:
            logger.critical("Refusing to overwrite existing global %s", identifier)
            raise DoubleBootstrapError(
                f"Global {identifier!r} is already bound; the search bootstrap may only run once per session"
            )

    def bind(self, identifier: str, exported_fn: Callable[[str], Any]) -> None:
        """Publish ``exported_fn`` as ``identifier``. May only be called once."""
        self.ensure_bindable(identifier)
        if not callable(exported_fn):
            raise TypeError(f"Query export for {identifier!r} is not callable: {exported_fn!r}")

        proxy = SearchProxy(self, identifier, exported_fn)
        if self._state is ModuleState.UNLOADED:
            self._state = ModuleState.LOADING
        self._binding = GlobalBinding(identifier=identifier, target=proxy, state=self._state)
        self._proxy = proxy
        self.namespace[identifier] = proxy

        bind_identifier(identifier)
        BINDING_READY.labels(identifier=identifier).set(0)
        logger.info("Published search function as %s", identifier)

    def mark_ready(self) -> None:
        if self._binding is None:
            raise InvalidStateTransitionError("Cannot mark the binding ready before the query export is bound")
        if self._settled.is_set():
            raise InvalidStateTransitionError(f"Binding already settled as {self._state.value}")

        self._state = ModuleState.READY
        self._binding.state = ModuleState.READY
        self._settled.set()
        BINDING_READY.labels(identifier=self._binding.identifier).set(1)
        logger.info("Search function %s is ready", self._binding.identifier)

    def mark_failed(self, error: LoadError) -> None:
        """Record a load failure; valid whether or not the export was bound."""
        if self._settled.is_set():
            raise InvalidStateTransitionError(f"Binding already settled as {self._state.value}")

        self._state = ModuleState.FAILED
        self._error = error
        if self._binding is not None:
            self._binding.state = ModuleState.FAILED
        self._settled.set()

    async def ready(self, timeout: float | None = None) -> SearchProxy:
        """Wait until the module is ready and return the published proxy.

        Raises:
            LoadError: The module failed to load.
            NotReadyError: ``timeout`` expired before the module settled.
        """
        try:
            await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise NotReadyError(f"Search module not ready after {timeout}s") from exc

        if self._error is not None:
            raise self._error.with_traceback(None)
        assert self._proxy is not None
        return self._proxy

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "binding": self._binding.to_dict() if self._binding is not None else None,
            "error": self._error.to_dict() if self._error is not None else None,
        }
