"""Unit tests for catalog construction from parameters."""

from __future__ import annotations

from dataclasses import replace

import pytest
from structlog.testing import capture_logs

from core.config import GeoIngestConfig
from core.errors import StoreUnavailableError
from store.catalog_factory import open_catalog
from store.local_catalog import LocalCatalog
from store.memory_catalog import InMemoryCatalog


def test_open_catalog_defaults_to_local_data_root(tmp_path) -> None:
    """Without parameters the catalog should live under the data root."""
    config = replace(GeoIngestConfig.from_env(), data_root=tmp_path)

    catalog = open_catalog({}, config)

    assert isinstance(catalog, LocalCatalog) and catalog.root == tmp_path


def test_open_catalog_selects_memory_catalog(tmp_path) -> None:
    """The memory catalog type should build an in-memory catalog."""
    config = replace(GeoIngestConfig.from_env(), data_root=tmp_path)

    assert isinstance(open_catalog({"catalog": "memory"}, config), InMemoryCatalog)


def test_open_catalog_rejects_unknown_type(tmp_path) -> None:
    """Unknown catalog types should raise a store-unavailable error."""
    config = replace(GeoIngestConfig.from_env(), data_root=tmp_path)

    with pytest.raises(StoreUnavailableError):
        open_catalog({"catalog": "cassandra"}, config)


def test_open_catalog_masks_sensitive_parameters(tmp_path) -> None:
    """Logged catalog parameters should never include secret values."""
    config = replace(GeoIngestConfig.from_env(), data_root=tmp_path)

    with capture_logs() as logs:
        open_catalog({"catalog": "memory", "password": "hunter2"}, config)

    opening = [entry for entry in logs if entry["event"] == "catalog_opening"]
    assert opening[0]["params"] == {"catalog": "memory", "password": "***"}
