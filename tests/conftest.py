"""Pytest configuration for geoingest test runs."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_GEOINGEST_ENV_VARS = (
    "GEOINGEST_DATA_ROOT",
    "GEOINGEST_BATCH_SIZE",
    "GEOINGEST_WRITER_CACHE_TIMEOUT",
)


def pytest_sessionstart() -> None:
    """Put src/ on sys.path so tests import the top-level packages."""
    src_path = Path(__file__).resolve().parent.parent / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture(autouse=True)
def _isolated_geoingest_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host GEOINGEST_* variables out of config built from the environment."""
    for name in _GEOINGEST_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
