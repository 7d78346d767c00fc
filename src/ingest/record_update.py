"""Partial attribute updates of stored features.

Records are matched against existing features by a unique identifier
column and only the attributes of the incoming schema are overwritten.
Nothing is ever appended: a record without a stored match counts as a
failure.
"""

from __future__ import annotations

from dataclasses import replace

from core.errors import (
    ConversionError,
    GeoIngestConfigError,
    RecordReadError,
    SchemaError,
    SchemaNotFoundError,
)
from core.logging_config import get_logger
from core.types import Feature, FeatureSchema, IngestOptions, IngestOutcome
from ingest.record_converter import RecordConverter
from ingest.record_source import RawRecord, RecordSource, read_batch, render_record
from store.catalog import FeatureCatalog
from store.filters import AttributeFilter, FidFilter, QueryFilter

_LOGGER = get_logger(__name__)


class RecordUpdater:
    """Applies attribute updates from raw records to stored features."""

    def __init__(
        self,
        catalog: FeatureCatalog,
        converter: RecordConverter,
        options: IngestOptions,
    ) -> None:
        """Initialize the updater.

        Args:
            catalog: Catalog holding the features to update.
            converter: Converter for incoming records.
            options: Ingest options; ``unique_identifier_column`` is required.

        Raises:
            GeoIngestConfigError: If no unique identifier column is configured.
        """
        if not options.unique_identifier_column:
            raise GeoIngestConfigError(
                "Attribute updates require unique_identifier_column to match stored features."
            )
        self._catalog = catalog
        self._converter = converter
        self._options = options
        self._unique_column = options.unique_identifier_column
        self._checked: dict[str, FeatureSchema | SchemaError] = {}

    def update_batch(self, source: RecordSource) -> IngestOutcome:
        """Update stored features from up to ``batch_size`` records.

        Each matched feature counts as one success; a record matching
        nothing counts as one failure.

        Args:
            source: Host-supplied record source.

        Returns:
            Success and failure counts for the batch.
        """
        success = 0
        failure = 0
        read_failures = 0
        schema_errors: dict[str, str] = {}

        def on_read_failure(error: RecordReadError) -> None:
            nonlocal failure, read_failures
            failure += 1
            read_failures += 1
            _LOGGER.error("record_read_failed", error=str(error))

        records = read_batch(
            source,
            self._options.batch_size,
            self._options.max_read_failures,
            on_read_failure,
        )
        for raw in records:
            try:
                schema, feature = self._convert(raw)
            except ConversionError as error:
                failure += 1
                _LOGGER.error(
                    "record_conversion_failed",
                    record=error.record_text or render_record(raw),
                    error=str(error),
                )
                continue
            try:
                stored = self._check_schema(schema)
            except SchemaError as error:
                failure += 1
                schema_errors[schema.type_name] = str(error)
                continue
            updated = self._update(stored, feature)
            if not updated:
                failure += 1
            else:
                success += updated
        _LOGGER.debug("update_batch_completed", success_count=success, failure_count=failure)
        return IngestOutcome(
            success_count=success,
            failure_count=failure,
            schema_errors=schema_errors,
            read_failure_count=read_failures,
        )

    def _convert(self, raw: RawRecord) -> tuple[FeatureSchema, Feature]:
        try:
            schema = self._converter.schema(raw)
            feature = self._converter.convert(raw, self._options)
        except ConversionError:
            raise
        except Exception as error:
            raise ConversionError(
                f"Failed to convert record: {error}", record_text=render_record(raw)
            ) from error
        if self._options.type_name:
            schema = schema.renamed(self._options.type_name)
            feature = replace(feature, type_name=self._options.type_name)
        return schema, feature

    def _check_schema(self, schema: FeatureSchema) -> FeatureSchema:
        """Return the stored schema, warning once about unknown attributes.

        Raises:
            SchemaNotFoundError: If the type name is not in the catalog.
        """
        type_name = schema.type_name
        checked = self._checked.get(type_name)
        if checked is None:
            stored = self._catalog.get_schema(type_name)
            if stored is None:
                checked = SchemaNotFoundError(
                    f"Schema {type_name} does not exist in the catalog; attribute updates "
                    "only apply to existing features. Ingest the type first.",
                    type_name,
                )
                _LOGGER.error("update_schema_missing", type_name=type_name)
            else:
                checked = stored
                for name in schema.attribute_names:
                    if stored.descriptor(name) is None:
                        _LOGGER.warning(
                            "attribute_not_in_schema",
                            type_name=type_name,
                            attribute=name,
                        )
            self._checked[type_name] = checked
        if isinstance(checked, SchemaError):
            raise checked
        return checked

    def _update(self, stored: FeatureSchema, feature: Feature) -> int | None:
        """Apply ``feature`` to every matching stored feature.

        Returns:
            Number of updated features, or ``None`` when the write failed.
        """
        query_filter = self._filter_for(feature)
        names = [name for name in feature.attributes if stored.descriptor(name) is not None]

        def apply_update(current: Feature) -> Feature:
            attributes = dict(current.attributes)
            for name in names:
                attributes[name] = feature.attributes[name]
            updated = replace(current, attributes=attributes)
            if self._options.feature_id_column is not None:
                updated = replace(updated, feature_id=feature.feature_id)
            if self._options.visibility_column is not None and feature.visibility is not None:
                updated = replace(updated, visibility=feature.visibility)
            return updated

        try:
            updated_count = self._catalog.update_feature(
                stored.type_name, query_filter, apply_update
            )
        except Exception as error:
            _LOGGER.error(
                "feature_update_failed",
                type_name=stored.type_name,
                feature=feature.encode(),
                error=str(error),
                exc_info=True,
            )
            return None
        if updated_count == 0:
            _LOGGER.warning(
                "update_filter_matched_nothing",
                type_name=stored.type_name,
                filter=query_filter.to_text(),
            )
        return updated_count

    def _filter_for(self, feature: Feature) -> QueryFilter:
        if self._unique_column == self._options.feature_id_column:
            return FidFilter(feature.feature_id)
        return AttributeFilter(self._unique_column, feature.attributes.get(self._unique_column))
