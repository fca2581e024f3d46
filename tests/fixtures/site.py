"""Static-site fixtures: a fake search engine glue module plus its binary index."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
import textwrap

from tinysearch_bridge.adapters.artifact_source import FilesystemArtifactSource
from tinysearch_bridge.service_layer.module_loader import WASM_MAGIC, WASM_VERSION


ENGINE_SOURCE = textwrap.dedent(
    """
    import json

    _documents = None


    def init(payload):
        global _documents
        _documents = json.loads(payload[8:].decode("utf-8"))
        return len(_documents)


    def search(query):
        if _documents is None:
            raise RuntimeError("search called before init")
        needle = query.lower()
        return [doc for doc in _documents if needle and needle in doc["title"].lower()]
    """
)

ASYNC_ENGINE_SOURCE = textwrap.dedent(
    """
    import asyncio

    _ready = False


    async def init(payload):
        global _ready
        await asyncio.sleep(0)
        _ready = True
        return "instance"


    def search(query):
        return [("async", query, _ready)]
    """
)

DOCUMENTS = [
    {"title": "Rust and WebAssembly", "url": "/posts/rust-wasm/"},
    {"title": "Static site search without a server", "url": "/posts/static-search/"},
    {"title": "Notes on Ünïcode tokenisation 検索", "url": "/posts/unicode/"},
]


def build_wasm_payload(documents: list[dict] | None = None) -> bytes:
    """A preamble-valid binary whose body the fake engine reads as JSON."""
    body = json.dumps(DOCUMENTS if documents is None else documents).encode("utf-8")
    return WASM_MAGIC + WASM_VERSION + body


def write_site(
    root: Path,
    base_path: str = "/",
    *,
    engine_name: str = "tinysearch_engine",
    code: str | bytes | None = ENGINE_SOURCE,
    data: bytes | None = None,
    include_data: bool = True,
) -> Path:
    """Write the artifact pair under ``root`` + ``base_path``; ``code=None`` skips the glue."""
    directory = root / base_path.strip("/")
    directory.mkdir(parents=True, exist_ok=True)
    if code is not None:
        code_bytes = code.encode("utf-8") if isinstance(code, str) else code
        (directory / f"{engine_name}.py").write_bytes(code_bytes)
    if include_data:
        payload = build_wasm_payload() if data is None else data
        (directory / f"{engine_name}_bg.wasm").write_bytes(payload)
    return directory


class GatedArtifactSource(FilesystemArtifactSource):
    """Filesystem source that holds data-artifact fetches until ``release()``."""

    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.gate = asyncio.Event()
        self.data_requested = asyncio.Event()
        self.fetched: list[str] = []

    def release(self) -> None:
        self.gate.set()

    async def fetch(self, path: str) -> bytes:
        self.fetched.append(path)
        if path.endswith(".wasm"):
            self.data_requested.set()
            await self.gate.wait()
        return await super().fetch(path)
