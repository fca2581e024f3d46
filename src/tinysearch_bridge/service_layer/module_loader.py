"""Fetch and instantiate the search module from a deployment base path.

The module ships as two co-located artifacts:

- ``<engine>.py``: glue code exposing a ``search(query)`` export and an
  ``init(payload)`` default initializer (sync or async).
- ``<engine>_bg.wasm``: the compiled search index handed to ``init``.

``search`` is a plain function reference that exists as soon as the glue code
has executed; it only answers correctly once ``init`` has completed. The
loader hands the export out through ``on_export`` before instantiation starts
so the caller can publish it early.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import importlib.util
import inspect
import logging
from types import ModuleType
from typing import Any

from tinysearch_bridge.adapters.artifact_source import ArtifactSource
from tinysearch_bridge.config import DEFAULT_ENGINE_NAME
from tinysearch_bridge.domain.model import ArtifactPaths, ModuleHandle, ModuleState
from tinysearch_bridge.errors import (
    DoubleBootstrapError,
    InstantiationFailure,
    LoadAbortedError,
    LoadError,
    LoadTimeoutError,
    ResourceLoadFailure,
)
from tinysearch_bridge.observability.metrics import LOAD_LATENCY, LOAD_OUTCOME
from tinysearch_bridge.observability.tracing import create_span


logger = logging.getLogger(__name__)

QUERY_EXPORT = "search"
INITIALIZER_EXPORT = "init"

WASM_MAGIC = b"\x00asm"
WASM_VERSION = b"\x01\x00\x00\x00"

OnExport = Callable[[ModuleHandle], None]

_UNSET: Any = object()


def validate_wasm_payload(payload: bytes, location: str) -> None:
    """Reject payloads that are not a version 1 WebAssembly binary."""
    if len(payload) < 8 or not payload.startswith(WASM_MAGIC):
        raise InstantiationFailure(f"Data artifact is not a WebAssembly binary: {location}", location=location)
    if payload[4:8] != WASM_VERSION:
        raise InstantiationFailure(
            f"Unsupported WebAssembly version {payload[4:8].hex()} in {location}",
            location=location,
        )


def _execute(source: bytes, location: str, module: ModuleType) -> None:
    exec(compile(source, location, "exec"), module.__dict__)


class ModuleLoader:
    """Owns the single ``ModuleHandle`` of a page session while it loads."""

    def __init__(
        self,
        source: ArtifactSource,
        *,
        engine_name: str = DEFAULT_ENGINE_NAME,
        timeout: float | None = None,
    ) -> None:
        self.source = source
        self.engine_name = engine_name
        self.timeout = timeout
        self._handle: ModuleHandle | None = None

    @property
    def handle(self) -> ModuleHandle | None:
        return self._handle

    async def load(
        self,
        base_path: str,
        *,
        on_export: OnExport | None = None,
        timeout: float | None = _UNSET,
    ) -> ModuleHandle:
        """Load the module hosted under ``base_path``.

        Args:
            base_path: Deployment base path, e.g. ``/`` or ``/memo_pub/``.
            on_export: Called once with the handle as soon as the query export
                exists, before the data artifact is instantiated.
            timeout: Deadline in seconds for the whole sequence. Defaults to the
                loader timeout; ``None`` waits indefinitely.

        Returns:
            The handle in the ``ready`` state.

        Raises:
            ResourceLoadFailure: An artifact could not be fetched.
            InstantiationFailure: The glue code or the binary was rejected.
            LoadTimeoutError: The deadline expired.
            DoubleBootstrapError: This loader already loaded a module.

        Cancelling the call marks the handle failed with ``LoadAbortedError``.
        """
        if self._handle is not None:
            raise DoubleBootstrapError(
                f"Search module already loaded from {self._handle.paths.base_path}; loading is not repeatable"
            )

        try:
            paths = ArtifactPaths.for_base_path(base_path, self.engine_name)
        except ValueError as exc:
            error = ResourceLoadFailure(str(exc), location=base_path, cause=exc)
            LOAD_OUTCOME.labels(base_path=base_path, outcome=error.kind).inc()
            logger.error("Cannot load search module: %s", error, extra={"error_kind": error.kind})
            raise error from exc
        handle = ModuleHandle(paths=paths)
        self._handle = handle
        handle.begin_loading()

        deadline = self.timeout if timeout is _UNSET else timeout
        logger.info("Loading search module from %s (timeout=%ss)", paths.base_path, deadline)

        outcome = "aborted"
        try:
            with create_span("tinysearch.load", base_path=paths.base_path, engine=self.engine_name) as span:
                try:
                    await asyncio.wait_for(self._load(handle, on_export), timeout=deadline)
                except asyncio.TimeoutError as exc:
                    error = LoadTimeoutError(
                        f"Search module at {paths.base_path} was not ready after {deadline}s",
                        location=paths.base_path,
                        cause=exc,
                    )
                    outcome = error.kind
                    self._fail(handle, error)
                    raise error from exc
                except LoadError as error:
                    outcome = error.kind
                    self._fail(handle, error)
                    raise
                except asyncio.CancelledError as exc:
                    self._fail(
                        handle,
                        LoadAbortedError(
                            f"Loading from {paths.base_path} was cancelled",
                            location=paths.base_path,
                            cause=exc,
                        ),
                    )
                    raise
                except Exception as exc:
                    # Engine glue or an on_export callback failed outside the artifact checks
                    error = InstantiationFailure(
                        f"Search module at {paths.base_path} failed to load: {exc}",
                        location=paths.base_path,
                        cause=exc,
                    )
                    outcome = error.kind
                    self._fail(handle, error)
                    raise error from exc
                outcome = "ready"
                span.set_attribute("tinysearch.state", handle.state.value)
        finally:
            if handle.elapsed is not None:
                LOAD_LATENCY.labels(base_path=paths.base_path).observe(handle.elapsed)
            LOAD_OUTCOME.labels(base_path=paths.base_path, outcome=outcome).inc()

        logger.info("Search module ready from %s in %.3fs", paths.base_path, handle.elapsed or 0.0)
        return handle

    async def _load(self, handle: ModuleHandle, on_export: OnExport | None) -> None:
        module = await self._execute_code_artifact(handle.paths.code_path)
        query, initializer = self._resolve_exports(module, self.source.locate(handle.paths.code_path))
        handle.attach_exports(query, initializer)

        if on_export is not None:
            on_export(handle)

        await self._instantiate(handle)

    async def _execute_code_artifact(self, code_path: str) -> ModuleType:
        location = self.source.locate(code_path)
        source = await self.source.fetch(code_path)

        spec = importlib.util.spec_from_loader(self.engine_name, loader=None, origin=location)
        module = importlib.util.module_from_spec(spec)  # type: ignore[arg-type]
        module.__file__ = location
        try:
            # Top-level glue code may block
            await asyncio.to_thread(_execute, source, location, module)
        except Exception as exc:
            raise InstantiationFailure(
                f"Code artifact {location} failed to execute: {exc}",
                location=location,
                cause=exc,
            ) from exc

        logger.debug("Executed code artifact %s", location)
        return module

    def _resolve_exports(self, module: ModuleType, location: str) -> tuple[Callable[[str], Any], Callable[[bytes], Any]]:
        exports = []
        for name in (QUERY_EXPORT, INITIALIZER_EXPORT):
            value = getattr(module, name, None)
            if not callable(value):
                raise InstantiationFailure(f"Code artifact {location} has no callable {name!r} export", location=location)
            exports.append(value)
        return exports[0], exports[1]

    async def _instantiate(self, handle: ModuleHandle) -> None:
        data_path = handle.paths.data_path
        location = self.source.locate(data_path)

        with create_span("tinysearch.instantiate", data_location=location):
            payload = await self.source.fetch(data_path)
            validate_wasm_payload(payload, location)

            initializer = handle.initializer
            assert initializer is not None
            try:
                if inspect.iscoroutinefunction(initializer):
                    instance = await initializer(payload)
                else:
                    instance = await asyncio.to_thread(initializer, payload)
                if inspect.isawaitable(instance):
                    instance = await instance
            except Exception as exc:
                raise InstantiationFailure(
                    f"Initializer rejected {location}: {exc}",
                    location=location,
                    cause=exc,
                ) from exc

        handle.mark_ready(instance)

    def _fail(self, handle: ModuleHandle, error: LoadError) -> None:
        if handle.state is ModuleState.LOADING:
            handle.mark_failed(error)
        logger.error(
            "Search module failed to load from %s: %s",
            handle.paths.base_path,
            error,
            extra={"error_kind": error.kind, "location": error.location},
        )
