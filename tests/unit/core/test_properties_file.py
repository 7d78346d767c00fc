"""Unit tests for YAML ingest properties files."""

from __future__ import annotations

import pytest

from core.errors import GeoIngestConfigError
from core.properties_file import load_ingest_properties
from tests.fixture_paths import fixture_path


def test_load_ingest_properties_renders_values_as_text() -> None:
    """YAML scalars should be rendered as property strings."""
    properties = load_ingest_properties(str(fixture_path("properties/modify.yaml")))

    assert properties == {
        "write-mode": "modify",
        "unique-identifier-column": "name",
        "writer-caching-enabled": "true",
        "writer-cache-idle-timeout": "30 sec",
        "batch-size": "2",
    }


def test_load_ingest_properties_rejects_unknown_keys() -> None:
    """Unknown property names should raise a config error."""
    with pytest.raises(GeoIngestConfigError, match="dataset-name"):
        load_ingest_properties(str(fixture_path("properties/unknown_key.yaml")))


def test_load_ingest_properties_rejects_missing_file(tmp_path) -> None:
    """A missing properties file should raise a config error."""
    with pytest.raises(GeoIngestConfigError):
        load_ingest_properties(str(tmp_path / "missing.yaml"))


def test_load_ingest_properties_rejects_non_mapping(tmp_path) -> None:
    """A YAML list should be rejected."""
    properties_path = tmp_path / "list.yaml"
    properties_path.write_text("- write-mode\n", encoding="utf-8")

    with pytest.raises(GeoIngestConfigError):
        load_ingest_properties(str(properties_path))
