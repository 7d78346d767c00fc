"""Unit tests for the ingest pipeline lifecycle."""

from __future__ import annotations

import pytest

from core.errors import GeoIngestError, StoreUnavailableError
from core.types import BatchTransfer, CompatibilityMode, IngestOptions
from ingest.pipeline import IngestPipeline
from store.memory_catalog import InMemoryCatalog
from tests.feature_builders import (
    EXTENDED_SPEC,
    build_converter,
    build_options,
    build_records,
    build_schema,
    build_source,
)


def test_pipeline_stop_disposes_catalog() -> None:
    """Stopping the pipeline should dispose of the catalog it opened."""
    catalog = InMemoryCatalog()
    pipeline = IngestPipeline(build_options(), lambda: catalog, build_converter())
    pipeline.start()

    pipeline.stop()

    assert catalog.disposed and not pipeline.started


def test_pipeline_context_manager_processes_batches() -> None:
    """A started pipeline should ingest batches and report success."""
    catalog = InMemoryCatalog()

    with IngestPipeline(build_options(), lambda: catalog, build_converter()) as pipeline:
        result = pipeline.process_batch(build_source(build_records("a", "b", "c")))
        stored = len(catalog.features("points"))

    assert (result.transfer, result.outcome.success_count, stored) == (
        BatchTransfer.SUCCESS,
        3,
        3,
    )


def test_pipeline_wraps_catalog_factory_errors() -> None:
    """Catalog factory failures should surface as store-unavailable errors."""

    def _broken_factory() -> InMemoryCatalog:
        raise OSError("connection refused")

    pipeline = IngestPipeline(build_options(), _broken_factory, build_converter())

    with pytest.raises(StoreUnavailableError):
        pipeline.start()


def test_pipeline_disposes_catalog_when_start_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    """A failure after the catalog opened should dispose of it before raising."""
    catalog = InMemoryCatalog()

    def _failing_build(*args, **kwargs):
        raise RuntimeError("pool construction failed")

    monkeypatch.setattr("ingest.pipeline.build_writer_pool", _failing_build)
    pipeline = IngestPipeline(build_options(), lambda: catalog, build_converter())

    with pytest.raises(RuntimeError):
        pipeline.start()

    assert catalog.disposed and not pipeline.started


def test_pipeline_rejects_batches_before_start() -> None:
    """Processing before start should raise."""
    pipeline = IngestPipeline(build_options(), InMemoryCatalog, build_converter())

    with pytest.raises(GeoIngestError):
        pipeline.process_batch(build_source(build_records("a")))


def test_schema_errors_route_batch_to_failure() -> None:
    """A halted type name should route the batch to failure."""
    catalog = InMemoryCatalog()
    catalog.create_schema(build_schema())
    options = build_options(schema_compatibility_mode=CompatibilityMode.EXACT)

    with IngestPipeline(options, lambda: catalog, build_converter(EXTENDED_SPEC)) as pipeline:
        result = pipeline.process_batch(build_source(build_records("a")))

    assert (result.transfer, result.outcome.failure_count) == (BatchTransfer.FAILURE, 1)


def test_pipeline_processes_update_batches() -> None:
    """Update batches should modify features ingested earlier."""
    catalog = InMemoryCatalog()
    options = build_options(unique_identifier_column="fid")

    with IngestPipeline(options, lambda: catalog, build_converter()) as pipeline:
        pipeline.process_batch(build_source(build_records("a")))
        changed = build_records("a")
        changed[0]["count"] = 99
        result = pipeline.process_update_batch(build_source(changed))
        stored = catalog.features("points")[0]

    assert (result.outcome.success_count, stored.attributes["count"]) == (1, 99)


def test_pipeline_start_validates_options() -> None:
    """Invalid options should fail before the catalog is opened."""
    opened: list[bool] = []

    def _factory() -> InMemoryCatalog:
        opened.append(True)
        return InMemoryCatalog()

    pipeline = IngestPipeline(IngestOptions(batch_size=0), _factory, build_converter())

    with pytest.raises(GeoIngestError):
        pipeline.start()
    assert opened == []
