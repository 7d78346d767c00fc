"""Unit tests for the feature SDK client."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from core.config import GeoIngestConfig
from core.errors import GeoIngestConfigError, RecordReadError, SchemaNotFoundError
from core.types import BatchTransfer, IngestOptions
from ingest.pipeline import IngestPipeline
from ingest.record_source import RecordSource
from store.feature_sdk import GeoIngestClient, _drain
from store.memory_catalog import InMemoryCatalog
from tests.feature_builders import build_converter
from tests.fixture_paths import POINTS_SCHEMA_SPEC, fixture_path


def _client(tmp_path) -> GeoIngestClient:
    return GeoIngestClient(replace(GeoIngestConfig.from_env(), data_root=tmp_path))


def _options(**overrides: object) -> IngestOptions:
    values: dict[str, object] = {"type_name": "points", "feature_id_column": "fid", "batch_size": 2}
    values.update(overrides)
    return IngestOptions(**values)  # type: ignore[arg-type]


def test_ingest_file_processes_every_batch(tmp_path) -> None:
    """All records should be ingested even when they span several batches."""
    client = _client(tmp_path)

    result = client.ingest_file(
        fixture_path("records/points.jsonl"), POINTS_SCHEMA_SPEC, _options()
    )

    assert (result.outcome.success_count, result.outcome.failure_count, result.transfer) == (
        3,
        0,
        BatchTransfer.SUCCESS,
    )


def test_ingest_file_counts_bad_records_as_failures(tmp_path) -> None:
    """Unreadable and unconvertible records should be counted, not raised."""
    client = _client(tmp_path)

    result = client.ingest_file(
        fixture_path("records/points_with_errors.jsonl"), POINTS_SCHEMA_SPEC, _options()
    )

    assert (result.outcome.success_count, result.outcome.failure_count) == (2, 2)


def test_ingest_file_requires_existing_file(tmp_path) -> None:
    """A missing record file should raise a config error."""
    with pytest.raises(GeoIngestConfigError):
        _client(tmp_path).ingest_file(tmp_path / "missing.jsonl", POINTS_SCHEMA_SPEC, _options())


def test_schemas_lists_ingested_types(tmp_path) -> None:
    """Schemas should list every type name created by ingest."""
    client = _client(tmp_path)
    client.ingest_file(fixture_path("records/points.jsonl"), POINTS_SCHEMA_SPEC, _options())

    assert [schema.type_name for schema in client.schemas()] == ["points"]


def test_describe_raises_for_unknown_type(tmp_path) -> None:
    """Describing an undefined type name should raise."""
    with pytest.raises(SchemaNotFoundError):
        _client(tmp_path).describe("points")


def test_with_data_root_switches_catalog(tmp_path) -> None:
    """A cloned client should read from its own data root."""
    client = _client(tmp_path / "first")
    client.ingest_file(fixture_path("records/points.jsonl"), POINTS_SCHEMA_SPEC, _options())

    other = client.with_data_root(str(tmp_path / "second"))

    assert other.schemas() == []


class _BrokenSource(RecordSource):
    def __init__(self) -> None:
        self.calls = 0

    def read_next(self):
        self.calls += 1
        raise RecordReadError("stream corrupted")


def test_drain_stops_when_batches_only_fail_to_read() -> None:
    """A source that never yields a record should end after one capped batch."""
    source = _BrokenSource()
    options = _options(max_read_failures=3)
    pipeline = IngestPipeline(options, InMemoryCatalog, build_converter())

    with pipeline:
        result = _drain(source, pipeline.process_batch)

    assert (result.outcome.failure_count, source.calls) == (3, 3)


def test_ingest_file_stops_on_unreadable_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A file that cannot be opened should count one failure and return."""
    records = tmp_path / "records.jsonl"
    records.write_text('{"fid": "p-1"}\n', encoding="utf-8")
    original_open = Path.open

    def _guarded_open(self, *args, **kwargs):
        if self == records:
            raise PermissionError("permission denied")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", _guarded_open)

    result = _client(tmp_path / "root").ingest_file(records, POINTS_SCHEMA_SPEC, _options())

    assert (result.outcome.success_count, result.outcome.failure_count) == (0, 1)
