"""Adapters for reaching the hosted search artifacts."""

from tinysearch_bridge.adapters.artifact_source import (
    ArtifactSource,
    FilesystemArtifactSource,
    HttpArtifactSource,
    build_artifact_source,
)


__all__ = [
    "ArtifactSource",
    "FilesystemArtifactSource",
    "HttpArtifactSource",
    "build_artifact_source",
]
