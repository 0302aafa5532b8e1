"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from authflow.registry import SessionRegistry, reset_session_registry
from tests.helpers import FakeBrowser, Recorder


@pytest.fixture()
def recorder() -> Recorder:
    """Create a recording completion callback."""
    return Recorder()


@pytest.fixture()
def registry() -> SessionRegistry:
    """Create an isolated session registry."""
    return SessionRegistry()


@pytest.fixture()
def browser() -> FakeBrowser:
    """Create a recording authorization browser."""
    return FakeBrowser()


@pytest.fixture(autouse=True)
def _reset_default_registry():
    """Keep the default registry from leaking between tests."""
    yield
    reset_session_registry()


@pytest.fixture()
def isolated_config(tmp_path, monkeypatch):
    """Run in an empty directory without authflow environment variables."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("AUTHFLOW_CONFIG_FILE", raising=False)
    monkeypatch.delenv("AUTHFLOW_LOG__LEVEL", raising=False)
    for name in ("CLIENT_ID", "DOMAIN", "APP_IDENTIFIER", "USE_PKCE", "SCOPE", "AUDIENCE"):
        monkeypatch.delenv(f"AUTHFLOW_OAUTH2__{name}", raising=False)
    return tmp_path
