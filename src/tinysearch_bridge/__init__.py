"""Bootstrap a precompiled search module and publish its query function as a global."""

from tinysearch_bridge.config import DEFAULT_ENGINE_NAME, DEFAULT_GLOBAL_NAME, DEPLOYMENT_BASE_PATHS, Settings
from tinysearch_bridge.domain.model import ArtifactPaths, GlobalBinding, ModuleHandle, ModuleState
from tinysearch_bridge.errors import (
    BridgeError,
    DoubleBootstrapError,
    InstantiationFailure,
    LoadAbortedError,
    LoadError,
    LoadTimeoutError,
    NotReadyError,
    ResourceLoadFailure,
)
from tinysearch_bridge.service_layer import GlobalBridge, ModuleLoader, SearchBootstrap, SearchProxy, bootstrap


__all__ = [
    "DEFAULT_ENGINE_NAME",
    "DEFAULT_GLOBAL_NAME",
    "DEPLOYMENT_BASE_PATHS",
    "ArtifactPaths",
    "BridgeError",
    "DoubleBootstrapError",
    "GlobalBinding",
    "GlobalBridge",
    "InstantiationFailure",
    "LoadAbortedError",
    "LoadError",
    "LoadTimeoutError",
    "ModuleHandle",
    "ModuleLoader",
    "ModuleState",
    "NotReadyError",
    "ResourceLoadFailure",
    "SearchBootstrap",
    "SearchProxy",
    "Settings",
    "bootstrap",
]
