"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# Complete test environment that overrides every Settings field read from env
TEST_ENV = {
    "SITE_ROOT": ".",
    "DEPLOYMENT": "root",
    "ENGINE_NAME": "tinysearch_engine",
    "GLOBAL_NAME": "tinysearch",
    "LOAD_TIMEOUT_SECONDS": "5",
    "HTTP_TIMEOUT": "5",
    "LOG_LEVEL": "info",
    "LOG_JSON": "true",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from tests.fixtures.site import write_site


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset configuration env vars before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("BASE_PATH", raising=False)
    monkeypatch.delenv("OBSERVABILITY__ENABLED", raising=False)


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    """A site hosting the artifacts in both deployments: ``/`` and ``/memo_pub/``."""
    root = tmp_path / "site"
    write_site(root, "/")
    write_site(root, "/memo_pub/")
    return root


@pytest.fixture
def namespace() -> dict:
    """Stand-in for the page's global namespace."""
    return {}
