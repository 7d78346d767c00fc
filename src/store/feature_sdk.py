"""Python SDK for feature ingest operations.

This module exposes high-level APIs for file ingest, attribute
updates, schema inspection and export over a local feature catalog.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Callable

from core.config import GeoIngestConfig
from core.constants import EXPORTS_DIR_NAME, LANCE_DIR_NAME
from core.errors import GeoIngestConfigError, SchemaNotFoundError
from core.schema_spec import parse_schema_spec
from core.types import BatchResult, BatchTransfer, FeatureSchema, IngestOptions, IngestOutcome
from ingest.pipeline import IngestPipeline
from ingest.record_converter import MappingRecordConverter, apply_geometry_columns
from ingest.record_source import JsonlRecordSource, RecordSource
from store.lance_export import export_type_to_lance
from store.local_catalog import LocalCatalog

_BatchProcessor = Callable[[RecordSource], BatchResult]


class GeoIngestClient:
    """Primary SDK entry point for local feature ingest workflows."""

    def __init__(self, config: GeoIngestConfig | None = None) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
        """
        self._config = config or GeoIngestConfig.from_env()

    @property
    def config(self) -> GeoIngestConfig:
        """Return the client's runtime configuration."""
        return self._config

    def ingest_file(self, path: Path, schema_spec: str, options: IngestOptions) -> BatchResult:
        """Ingest every record of a JSONL file, one batch at a time.

        Args:
            path: JSONL file with one record object per line.
            schema_spec: Schema spec string of the incoming records.
            options: Ingest options; ``type_name`` names the schema.

        Returns:
            Combined outcome of all batches.

        Raises:
            GeoIngestConfigError: If the schema spec or options are invalid.
            StoreUnavailableError: If the catalog cannot be opened.
        """
        _require_file(path)
        converter = self._build_converter(schema_spec, options)
        with JsonlRecordSource(path) as source:
            with IngestPipeline(options, self._open_catalog, converter) as pipeline:
                return _drain(source, pipeline.process_batch)

    def update_file(self, path: Path, schema_spec: str, options: IngestOptions) -> BatchResult:
        """Apply every record of a JSONL file as a partial update.

        Args:
            path: JSONL file with one record object per line.
            schema_spec: Schema spec string of the incoming records.
            options: Ingest options with ``unique_identifier_column`` set.

        Returns:
            Combined outcome of all batches.
        """
        _require_file(path)
        converter = self._build_converter(schema_spec, options)
        with JsonlRecordSource(path) as source:
            with IngestPipeline(options, self._open_catalog, converter) as pipeline:
                return _drain(source, pipeline.process_update_batch)

    def schemas(self) -> list[FeatureSchema]:
        """Return every schema defined in the catalog, sorted by type name."""
        catalog = self._open_catalog()
        try:
            return [
                schema
                for schema in (catalog.get_schema(name) for name in catalog.type_names())
                if schema is not None
            ]
        finally:
            catalog.dispose()

    def describe(self, type_name: str) -> FeatureSchema:
        """Return the stored schema of ``type_name``.

        Raises:
            SchemaNotFoundError: If the type name is not defined.
        """
        catalog = self._open_catalog()
        try:
            schema = catalog.get_schema(type_name)
        finally:
            catalog.dispose()
        if schema is None:
            raise SchemaNotFoundError(
                f"Schema {type_name} does not exist in catalog {self._config.data_root}.",
                type_name,
            )
        return schema

    def export_lance(self, type_name: str, output_dir: Path | None = None) -> int:
        """Export the features of ``type_name`` to a Lance dataset.

        Args:
            type_name: Type name to export.
            output_dir: Dataset directory; defaults to
                ``<data_root>/exports/<type_name>/data.lance``.

        Returns:
            Number of exported features.
        """
        target = output_dir
        if target is None:
            target = self._config.data_root / EXPORTS_DIR_NAME / type_name / LANCE_DIR_NAME
        catalog = self._open_catalog()
        try:
            return export_type_to_lance(catalog, type_name, target)
        finally:
            catalog.dispose()

    def with_data_root(self, data_root: str) -> "GeoIngestClient":
        """Clone the client with a different local data root.

        Args:
            data_root: New data root path.

        Returns:
            New SDK client instance.
        """
        resolved_root = Path(data_root).expanduser().resolve()
        return GeoIngestClient(replace(self._config, data_root=resolved_root))

    def _open_catalog(self) -> LocalCatalog:
        return LocalCatalog(self._config.data_root)

    def _build_converter(self, schema_spec: str, options: IngestOptions) -> MappingRecordConverter:
        schema = parse_schema_spec(options.type_name or "features", schema_spec)
        return MappingRecordConverter(apply_geometry_columns(schema, options.geometry_columns))


def _drain(source: RecordSource, process: _BatchProcessor) -> BatchResult:
    """Process batches until a batch reads no records.

    A batch that only hit read failures ends the drain, so a source that
    keeps failing is bounded by the per-batch read failure limit.
    """
    outcome = IngestOutcome()
    while True:
        result = process(source)
        outcome = outcome.combined(result.outcome)
        if result.outcome.records_read == 0:
            break
    transfer = BatchTransfer.FAILURE if outcome.schema_errors else BatchTransfer.SUCCESS
    return BatchResult(outcome=outcome, transfer=transfer)


def _require_file(path: Path) -> None:
    if not path.is_file():
        raise GeoIngestConfigError(
            f"Record file not found: {path}. Provide an existing JSONL file."
        )
