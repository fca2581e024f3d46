"""Domain model for the search module lifecycle.

A page session owns at most one ``ModuleHandle`` (the instantiated engine) and one
``GlobalBinding`` (the name published to page scripts). Both only change while the
module is loading:

    unloaded -> loading -> ready
                       \\-> failed
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import time
from typing import Any

from tinysearch_bridge.errors import InvalidStateTransitionError, LoadError


CODE_ARTIFACT_SUFFIX = ".py"
DATA_ARTIFACT_SUFFIX = "_bg.wasm"


class ModuleState(str, Enum):
    """Readiness of the search module."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {ModuleState.READY, ModuleState.FAILED}


_ALLOWED_TRANSITIONS: dict[ModuleState, frozenset[ModuleState]] = {
    ModuleState.UNLOADED: frozenset({ModuleState.LOADING}),
    ModuleState.LOADING: frozenset({ModuleState.READY, ModuleState.FAILED}),
    ModuleState.READY: frozenset(),
    ModuleState.FAILED: frozenset(),
}


@dataclass(slots=True, frozen=True)
class ArtifactPaths:
    """Locations of the two co-located artifacts under a deployment base path."""

    base_path: str
    code_path: str
    data_path: str

    @classmethod
    def for_base_path(cls, base_path: str, engine_name: str) -> ArtifactPaths:
        """Derive artifact paths for a deployment.

        ``""`` and ``"/"`` both mean the site root; a missing leading or trailing
        slash is added. Only the shape of the path is checked here, whether the
        artifacts exist is discovered when they are fetched.

        Raises:
            ValueError: If the path contains ``.`` or ``..`` segments or the engine
                name is empty.
        """
        if not engine_name:
            raise ValueError("engine_name must not be empty")

        normalized = base_path.strip() or "/"
        if not normalized.startswith("/"):
            normalized = f"/{normalized}"
        if not normalized.endswith("/"):
            normalized = f"{normalized}/"

        segments = [segment for segment in normalized.split("/") if segment]
        if any(segment in {".", ".."} for segment in segments):
            raise ValueError(f"Base path must not contain relative segments: {base_path!r}")

        return cls(
            base_path=normalized,
            code_path=f"{normalized}{engine_name}{CODE_ARTIFACT_SUFFIX}",
            data_path=f"{normalized}{engine_name}{DATA_ARTIFACT_SUFFIX}",
        )


@dataclass(slots=True)
class ModuleHandle:
    """The instantiated search module, owned by the loader while it loads."""

    paths: ArtifactPaths
    state: ModuleState = ModuleState.UNLOADED
    query: Callable[[str], Any] | None = None
    initializer: Callable[[bytes], Any] | None = None
    instance: Any = None
    error: LoadError | None = None
    started_at: float | None = None
    finished_at: float | None = None

    def _transition(self, target: ModuleState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(
                f"Cannot move module handle from {self.state.value} to {target.value}"
            )
        self.state = target

    def begin_loading(self) -> None:
        self._transition(ModuleState.LOADING)
        self.started_at = time.time()

    def attach_exports(self, query: Callable[[str], Any], initializer: Callable[[bytes], Any]) -> None:
        """Record the engine exports. The query export is fixed once attached."""
        if self.state is not ModuleState.LOADING:
            raise InvalidStateTransitionError(f"Exports can only be attached while loading, not {self.state.value}")
        if self.query is not None:
            raise InvalidStateTransitionError("Module exports are already attached")
        self.query = query
        self.initializer = initializer

    def mark_ready(self, instance: Any = None) -> None:
        self._transition(ModuleState.READY)
        self.instance = instance
        self.finished_at = time.time()

    def mark_failed(self, error: LoadError) -> None:
        self._transition(ModuleState.FAILED)
        self.error = error
        self.finished_at = time.time()

    @property
    def elapsed(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "base_path": self.paths.base_path,
            "code_path": self.paths.code_path,
            "data_path": self.paths.data_path,
            "exports_attached": self.query is not None,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error.to_dict() if self.error is not None else None,
        }


@dataclass(slots=True)
class GlobalBinding:
    """A name published into the host namespace, mirroring the module state."""

    identifier: str
    target: Callable[..., Any]
    state: ModuleState = ModuleState.LOADING
    bound_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "state": self.state.value,
            "bound_at": self.bound_at,
        }
