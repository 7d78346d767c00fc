"""Per-batch ingest coordination.

This module drives each record through convert, reconcile, acquire,
write and release. Record-level failures are logged and counted so one
bad record never aborts the batch; schema-level failures halt only the
affected type name.
"""

from __future__ import annotations

from dataclasses import replace

from core.errors import ConversionError, RecordReadError, SchemaError
from core.logging_config import get_logger
from core.types import Feature, FeatureSchema, IngestOptions, IngestOutcome
from ingest.record_converter import RecordConverter
from ingest.record_source import RawRecord, RecordSource, read_batch, render_record
from ingest.schema_reconciler import SchemaReconciler
from store.writer_pool import WriterPool

_LOGGER = get_logger(__name__)


class _Tally:
    """Mutable success and failure counters for one batch."""

    def __init__(self) -> None:
        self.success = 0
        self.failure = 0
        self.read_failure = 0
        self.schema_errors: dict[str, str] = {}

    def to_outcome(self) -> IngestOutcome:
        return IngestOutcome(
            success_count=self.success,
            failure_count=self.failure,
            schema_errors=dict(self.schema_errors),
            read_failure_count=self.read_failure,
        )


class IngestCoordinator:
    """Writes batches of raw records into the feature store."""

    def __init__(
        self,
        reconciler: SchemaReconciler,
        writers: WriterPool,
        converter: RecordConverter,
        options: IngestOptions,
    ) -> None:
        self._reconciler = reconciler
        self._writers = writers
        self._converter = converter
        self._options = options

    def ingest_batch(self, source: RecordSource) -> IngestOutcome:
        """Ingest up to ``batch_size`` records from ``source``.

        Args:
            source: Host-supplied record source.

        Returns:
            Success and failure counts for the batch.
        """
        tally = _Tally()

        def on_read_failure(error: RecordReadError) -> None:
            tally.failure += 1
            tally.read_failure += 1
            _LOGGER.error("record_read_failed", error=str(error))

        records = read_batch(
            source,
            self._options.batch_size,
            self._options.max_read_failures,
            on_read_failure,
        )
        for raw in records:
            self._ingest_record(raw, tally)
        outcome = tally.to_outcome()
        _LOGGER.debug(
            "batch_ingested",
            success_count=outcome.success_count,
            failure_count=outcome.failure_count,
            halted_type_names=sorted(outcome.schema_errors),
        )
        return outcome

    def _ingest_record(self, raw: RawRecord, tally: _Tally) -> None:
        converted = self._convert(raw)
        if converted is None:
            tally.failure += 1
            return
        schema, feature = converted
        type_name = schema.type_name
        if type_name in tally.schema_errors:
            tally.failure += 1
            return
        try:
            result = self._reconciler.reconcile(schema)
        except SchemaError as error:
            tally.schema_errors[type_name] = str(error)
            tally.failure += 1
            _LOGGER.error("type_name_halted", type_name=type_name, error=str(error))
            return
        target = feature.project(result.target_schema)
        if self._write(type_name, target):
            tally.success += 1
        else:
            tally.failure += 1

    def _convert(self, raw: RawRecord) -> tuple[FeatureSchema, Feature] | None:
        try:
            schema = self._converter.schema(raw)
            feature = self._converter.convert(raw, self._options)
        except ConversionError as error:
            _LOGGER.error(
                "record_conversion_failed",
                record=error.record_text or render_record(raw),
                error=str(error),
            )
            return None
        except Exception as error:
            _LOGGER.error(
                "record_conversion_failed",
                record=render_record(raw),
                error=str(error),
                exc_info=True,
            )
            return None
        if self._options.type_name:
            schema = schema.renamed(self._options.type_name)
            feature = replace(feature, type_name=self._options.type_name)
        return schema, feature

    def _write(self, type_name: str, feature: Feature) -> bool:
        try:
            with self._writers.writer(type_name) as handle:
                handle.write(feature)
        except Exception as error:
            _LOGGER.error(
                "feature_write_failed",
                type_name=type_name,
                feature=feature.encode(),
                error=str(error),
                exc_info=True,
            )
            return False
        return True
