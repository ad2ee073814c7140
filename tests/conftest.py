"""Pytest configuration for klaw-chaos tests."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest
from hypothesis import HealthCheck, settings
from klaw_chaos import _config
from klaw_chaos.shared import _shared

if TYPE_CHECKING:
    from collections.abc import Generator

# Hypothesis tests here never depend on per-example fixture state
settings.register_profile('klaw-chaos', suppress_health_check=[HealthCheck.function_scoped_fixture])
settings.load_profile('klaw-chaos')


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return 'asyncio'


@pytest.fixture(autouse=True)
def clean_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Start every test without init(), env overrides, a shared engine or root handlers."""
    monkeypatch.delenv('KLAW_CHAOS_SEED', raising=False)
    monkeypatch.delenv('KLAW_CHAOS_LOG_LEVEL', raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    _config.reset_config()
    token = _shared.set(None)
    yield
    _shared.reset(token)
    _config.reset_config()
    root.handlers[:] = handlers
    root.setLevel(level)
