"""Public SDK surface for geoingest.

This module provides a stable import path for library users.
It re-exports the client, the pipeline and the typed option models.
"""

from __future__ import annotations

from core.config import GeoIngestConfig, ingest_options_from_properties
from core.types import (
    BatchResult,
    BatchTransfer,
    CompatibilityMode,
    Feature,
    FeatureSchema,
    IngestOptions,
    IngestOutcome,
    WriteMode,
)
from ingest.pipeline import IngestPipeline
from ingest.record_converter import MappingRecordConverter
from ingest.record_source import IterableRecordSource, JsonlRecordSource
from store.feature_sdk import GeoIngestClient
from store.local_catalog import LocalCatalog
from store.memory_catalog import InMemoryCatalog

__all__ = [
    "BatchResult",
    "BatchTransfer",
    "CompatibilityMode",
    "Feature",
    "FeatureSchema",
    "GeoIngestClient",
    "GeoIngestConfig",
    "InMemoryCatalog",
    "IngestOptions",
    "IngestOutcome",
    "IngestPipeline",
    "IterableRecordSource",
    "JsonlRecordSource",
    "LocalCatalog",
    "MappingRecordConverter",
    "WriteMode",
    "ingest_options_from_properties",
]
