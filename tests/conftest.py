"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

import httpx
import pytest

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cohere_proxy.core import clear_upstream_transports, register_upstream_transport
from cohere_proxy.settings import ProxySettings
from cohere_proxy.testing import FakeCohereUpstream

FAKE_UPSTREAM_BASE = "http://cohere.test/v1"

_ENV_OVERRIDES = (
    "COHERE_PROXY_CONFIG",
    "COHERE_PROXY_HOST",
    "COHERE_PROXY_PORT",
    "COHERE_PROXY_UPSTREAM_BASE",
    "COHERE_PROXY_TIMEOUT",
    "COHERE_PROXY_DEFAULT_MODEL",
    "COHERE_PROXY_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolate_proxy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's COHERE_PROXY_* variables out of every test."""
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


@pytest.fixture
def fake_upstream(clear_transport_registry: None) -> FakeCohereUpstream:
    """A fake Cohere API reachable at FAKE_UPSTREAM_BASE."""
    upstream = FakeCohereUpstream()
    register_upstream_transport(FAKE_UPSTREAM_BASE, httpx.ASGITransport(app=upstream.app))
    return upstream


@pytest.fixture
def proxy_settings() -> ProxySettings:
    return ProxySettings(upstream_base_url=FAKE_UPSTREAM_BASE, timeout_seconds=5.0)


@pytest.fixture
def proxy_app(proxy_settings: ProxySettings):
    from cohere_proxy.main import create_app

    return create_app(proxy_settings)
