"""
Shared pytest fixtures for PyPinia tests.
"""

import pytest

from pypinia import create_pinia, reset_config, set_active_pinia


@pytest.fixture(autouse=True)
def reset_runtime(monkeypatch):
    """Start every test in development mode with no active pinia."""
    monkeypatch.delenv("PYPINIA_ENV", raising=False)
    reset_config()
    set_active_pinia(None)
    yield
    set_active_pinia(None)
    reset_config()


@pytest.fixture
def pinia():
    """Provide a fresh, installed and active Pinia."""
    pinia = create_pinia().install()
    set_active_pinia(pinia)
    return pinia
