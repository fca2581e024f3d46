"""Service layer - module loading, global binding and bootstrap orchestration."""

from tinysearch_bridge.service_layer.bootstrap import SearchBootstrap, bootstrap
from tinysearch_bridge.service_layer.global_bridge import GlobalBridge, SearchProxy
from tinysearch_bridge.service_layer.module_loader import (
    INITIALIZER_EXPORT,
    QUERY_EXPORT,
    ModuleLoader,
    validate_wasm_payload,
)


__all__ = [
    "INITIALIZER_EXPORT",
    "QUERY_EXPORT",
    "GlobalBridge",
    "ModuleLoader",
    "SearchBootstrap",
    "SearchProxy",
    "bootstrap",
    "validate_wasm_payload",
]
