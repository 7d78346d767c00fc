"""In-memory feature catalog.

This module keeps schemas and features in process memory. It backs
unit tests and short-lived pipelines that do not need persistence.
"""

from __future__ import annotations

import threading
from typing import Iterator

from core.errors import SchemaExistsError, SchemaNotFoundError, StoreError
from core.types import Feature, FeatureSchema
from store.catalog import AppendChannel, FeatureCatalog, ModifyChannel, fit_feature
from store.filters import QueryFilter


class InMemoryCatalog(FeatureCatalog):
    """Thread-safe in-memory catalog implementation."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._schemas: dict[str, FeatureSchema] = {}
        self._features: dict[str, list[Feature]] = {}
        self._open_channels = 0
        self._disposed = False

    @property
    def disposed(self) -> bool:
        """Return whether :meth:`dispose` has been called."""
        return self._disposed

    @property
    def open_channel_count(self) -> int:
        """Return the number of append channels not yet closed."""
        with self._lock:
            return self._open_channels

    def get_schema(self, type_name: str) -> FeatureSchema | None:
        with self._lock:
            self._check_open()
            return self._schemas.get(type_name)

    def create_schema(self, schema: FeatureSchema) -> None:
        with self._lock:
            self._check_open()
            if schema.type_name in self._schemas:
                raise SchemaExistsError(
                    f"Schema {schema.type_name} already exists.", schema.type_name
                )
            self._schemas[schema.type_name] = schema
            self._features[schema.type_name] = []

    def update_schema(self, type_name: str, schema: FeatureSchema) -> None:
        with self._lock:
            self._check_open()
            self._require_schema(type_name)
            self._schemas[type_name] = schema.renamed(type_name)

    def type_names(self) -> list[str]:
        with self._lock:
            return sorted(self._schemas)

    def open_append_writer(self, type_name: str) -> AppendChannel:
        with self._lock:
            self._check_open()
            schema = self._require_schema(type_name)
            self._open_channels += 1
        return _MemoryAppendChannel(self, schema)

    def query(self, type_name: str, query_filter: QueryFilter | None = None) -> Iterator[Feature]:
        with self._lock:
            self._check_open()
            self._require_schema(type_name)
            snapshot = list(self._features[type_name])
        for feature in snapshot:
            if query_filter is None or query_filter.matches(feature):
                yield feature

    def open_modify_writer(self, type_name: str, query_filter: QueryFilter) -> ModifyChannel:
        self._lock.acquire()
        try:
            self._check_open()
            self._require_schema(type_name)
        except Exception:
            self._lock.release()
            raise
        return _MemoryModifyChannel(self, type_name, query_filter)

    def features(self, type_name: str) -> list[Feature]:
        """Return a snapshot of all features stored for ``type_name``."""
        return list(self.query(type_name))

    def dispose(self) -> None:
        with self._lock:
            self._disposed = True

    def _append(self, schema: FeatureSchema, feature: Feature) -> None:
        fitted = fit_feature(schema, feature)
        with self._lock:
            self._check_open()
            self._require_schema(schema.type_name)
            self._features[schema.type_name].append(fitted)

    def _channel_closed(self) -> None:
        with self._lock:
            self._open_channels -= 1

    def _require_schema(self, type_name: str) -> FeatureSchema:
        schema = self._schemas.get(type_name)
        if schema is None:
            raise SchemaNotFoundError(
                f"Schema {type_name} does not exist in the catalog. Create it before writing.",
                type_name,
            )
        return schema

    def _check_open(self) -> None:
        if self._disposed:
            raise StoreError("In-memory catalog has been disposed. Open a new catalog.")


class _MemoryAppendChannel(AppendChannel):
    def __init__(self, catalog: InMemoryCatalog, schema: FeatureSchema) -> None:
        self._catalog = catalog
        self._schema = schema
        self._closed = False

    def write(self, feature: Feature) -> None:
        if self._closed:
            raise StoreError(f"Append channel for {self._schema.type_name} is closed.")
        self._catalog._append(self._schema, feature)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._catalog._channel_closed()


class _MemoryModifyChannel(ModifyChannel):
    def __init__(
        self,
        catalog: InMemoryCatalog,
        type_name: str,
        query_filter: QueryFilter,
    ) -> None:
        self._catalog = catalog
        self._type_name = type_name
        self._query_filter = query_filter
        self._closed = False

    def __iter__(self) -> Iterator[Feature]:
        for feature in list(self._catalog._features[self._type_name]):
            if self._query_filter.matches(feature):
                yield feature

    def replace(self, current: Feature, replacement: Feature) -> None:
        stored = self._catalog._features[self._type_name]
        schema = self._catalog._schemas[self._type_name]
        for index, feature in enumerate(stored):
            if feature is current:
                stored[index] = fit_feature(schema, replacement)
                return
        raise StoreError(
            f"Feature {current.feature_id} is no longer stored in {self._type_name}."
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._catalog._lock.release()
