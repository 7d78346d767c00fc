"""Catalog construction from connection parameters.

This module selects a catalog implementation from string parameters
and logs the parameters with secret-looking values masked.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from core.config import GeoIngestConfig
from core.constants import SENSITIVE_PARAM_MARKERS
from core.errors import StoreUnavailableError
from core.logging_config import get_logger, mask_sensitive_params
from store.catalog import FeatureCatalog
from store.local_catalog import LocalCatalog
from store.memory_catalog import InMemoryCatalog

_LOGGER = get_logger(__name__)

CATALOG_TYPE_PARAM = "catalog"
CATALOG_PATH_PARAM = "path"
_CATALOG_TYPES = ("local", "memory")


def open_catalog(params: Mapping[str, str], config: GeoIngestConfig) -> FeatureCatalog:
    """Open the catalog described by ``params``.

    Args:
        params: Connection parameters. ``catalog`` selects ``local`` (default)
            or ``memory``; ``path`` overrides the local data root.
        config: Runtime configuration providing the default data root.

    Returns:
        Open feature catalog.

    Raises:
        StoreUnavailableError: If the catalog type is unknown or cannot be opened.
    """
    _LOGGER.info(
        "catalog_opening",
        params=mask_sensitive_params(dict(params), SENSITIVE_PARAM_MARKERS),
    )
    catalog_type = params.get(CATALOG_TYPE_PARAM, "local").strip().lower()
    if catalog_type == "memory":
        return InMemoryCatalog()
    if catalog_type != "local":
        raise StoreUnavailableError(
            f"Unknown catalog type '{catalog_type}': expected one of {list(_CATALOG_TYPES)}."
        )
    raw_path = params.get(CATALOG_PATH_PARAM)
    root = Path(raw_path).expanduser() if raw_path else config.data_root
    try:
        return LocalCatalog(root)
    except Exception as error:
        raise StoreUnavailableError(
            f"Failed to open local catalog at {root}: {error}"
        ) from error
