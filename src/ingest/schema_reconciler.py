"""Schema reconciliation against the feature catalog.

This module compares incoming schemas with stored definitions and
applies the configured compatibility mode: create missing schemas,
accept or reject drift, or migrate the catalog and invalidate writers.
"""

from __future__ import annotations

import threading

from core.errors import (
    SchemaDriftError,
    SchemaError,
    SchemaExistsError,
    SchemaIncompatibleError,
)
from core.logging_config import get_logger
from core.schema_spec import encode_schema
from core.types import (
    CompatibilityMode,
    FeatureSchema,
    ReconcileAction,
    ReconcileResult,
    SchemaCompatibility,
)
from store.catalog import FeatureCatalog
from store.writer_pool import WriterPool

_LOGGER = get_logger(__name__)


def compare_schemas(
    existing: FeatureSchema | None,
    incoming: FeatureSchema,
) -> SchemaCompatibility:
    """Classify an incoming schema against the stored one.

    Attribute order is ignored. Adding attributes is compatible; changing
    the type or geometry flags of an attribute, dropping an attribute, or
    adding a second default geometry is not.

    Args:
        existing: Stored schema, or ``None`` when the type name is new.
        incoming: Schema declared by incoming records.

    Returns:
        Compatibility classification.
    """
    if existing is None:
        return SchemaCompatibility.DOES_NOT_EXIST
    for attribute in existing.attributes:
        candidate = incoming.descriptor(attribute.name)
        if candidate is None or not attribute.same_definition(candidate):
            return SchemaCompatibility.INCOMPATIBLE
    added = [
        attribute
        for attribute in incoming.attributes
        if existing.descriptor(attribute.name) is None
    ]
    if not added:
        return SchemaCompatibility.UNCHANGED
    has_default = any(attribute.is_default_geometry for attribute in existing.attributes)
    if has_default and any(attribute.is_default_geometry for attribute in added):
        return SchemaCompatibility.INCOMPATIBLE
    return SchemaCompatibility.COMPATIBLE


class SchemaReconciler:
    """Reconciles each type name at most once per instance.

    Results, including failures, are cached by type name. A per-type lock
    keeps concurrent callers from creating the same schema twice.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        writers: WriterPool,
        mode: CompatibilityMode,
    ) -> None:
        self._catalog = catalog
        self._writers = writers
        self._mode = mode
        self._lock = threading.Lock()
        self._type_locks: dict[str, threading.Lock] = {}
        self._results: dict[str, ReconcileResult | SchemaError] = {}

    def reconcile(self, schema: FeatureSchema) -> ReconcileResult:
        """Reconcile ``schema`` with the catalog.

        Args:
            schema: Incoming schema.

        Returns:
            Action taken and the schema features must be written with.

        Raises:
            SchemaDriftError: If the schema drifted under exact mode. This is
                the ``FAIL`` action.
            SchemaIncompatibleError: If the schema conflicts with the catalog,
                also a ``FAIL`` action in every mode.
        """
        type_name = schema.type_name
        with self._type_lock(type_name):
            result = self._results.get(type_name)
            if result is None:
                try:
                    result = self._reconcile_uncached(schema)
                except SchemaError as error:
                    result = error
                self._results[type_name] = result
        if isinstance(result, SchemaError):
            raise result
        return result

    def _type_lock(self, type_name: str) -> threading.Lock:
        with self._lock:
            lock = self._type_locks.get(type_name)
            if lock is None:
                lock = threading.Lock()
                self._type_locks[type_name] = lock
            return lock

    def _reconcile_uncached(self, schema: FeatureSchema) -> ReconcileResult:
        type_name = schema.type_name
        existing = self._catalog.get_schema(type_name)
        if existing is None:
            return self._create(schema)
        return self._reconcile_existing(schema, existing)

    def _reconcile_existing(
        self,
        schema: FeatureSchema,
        existing: FeatureSchema,
    ) -> ReconcileResult:
        type_name = schema.type_name
        compatibility = compare_schemas(existing, schema)
        if compatibility == SchemaCompatibility.UNCHANGED:
            return ReconcileResult(ReconcileAction.NO_OP, existing)
        from_spec = encode_schema(existing)
        to_spec = encode_schema(schema)
        if compatibility == SchemaCompatibility.INCOMPATIBLE:
            _LOGGER.error(
                "schema_incompatible",
                type_name=type_name,
                from_spec=from_spec,
                to_spec=to_spec,
            )
            raise SchemaIncompatibleError(
                f"Incompatible schema change detected for {type_name}: from '{from_spec}' "
                f"to '{to_spec}'. Attributes can be added but not removed or retyped.",
                type_name,
            )
        if self._mode == CompatibilityMode.EXACT:
            _LOGGER.error(
                "schema_change_rejected",
                type_name=type_name,
                from_spec=from_spec,
                to_spec=to_spec,
            )
            raise SchemaDriftError(type_name, from_spec, to_spec)
        if self._mode == CompatibilityMode.EXISTING:
            _LOGGER.warning(
                "schema_change_ignored",
                type_name=type_name,
                from_spec=from_spec,
                to_spec=to_spec,
            )
            return ReconcileResult(ReconcileAction.WARN, existing)
        _LOGGER.info("schema_updated", type_name=type_name, from_spec=from_spec, to_spec=to_spec)
        self._catalog.update_schema(type_name, schema)
        self._writers.invalidate(type_name)
        return ReconcileResult(ReconcileAction.MIGRATE, schema)

    def _create(self, schema: FeatureSchema) -> ReconcileResult:
        _LOGGER.info("schema_created", type_name=schema.type_name, spec=encode_schema(schema))
        try:
            self._catalog.create_schema(schema)
        except SchemaExistsError:
            # created concurrently by another pipeline sharing the catalog
            existing = self._catalog.get_schema(schema.type_name)
            if existing is None:
                raise
            _LOGGER.info("schema_already_created", type_name=schema.type_name)
            return self._reconcile_existing(schema, existing)
        return ReconcileResult(ReconcileAction.CREATE, schema)
