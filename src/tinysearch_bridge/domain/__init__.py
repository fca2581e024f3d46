"""Domain layer: module handle, global binding and their lifecycle states."""

from tinysearch_bridge.domain.model import (
    CODE_ARTIFACT_SUFFIX,
    DATA_ARTIFACT_SUFFIX,
    ArtifactPaths,
    GlobalBinding,
    ModuleHandle,
    ModuleState,
)


__all__ = [
    "CODE_ARTIFACT_SUFFIX",
    "DATA_ARTIFACT_SUFFIX",
    "ArtifactPaths",
    "GlobalBinding",
    "ModuleHandle",
    "ModuleState",
]
