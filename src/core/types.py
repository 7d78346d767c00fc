"""Shared typed models.

This module defines the feature, schema, option and outcome models
shared by the ingest coordinator, reconciler, writer pools and stores.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping

from core.constants import (
    COMPATIBILITY_EXACT,
    COMPATIBILITY_EXISTING,
    COMPATIBILITY_UPDATE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_IDLE_WRITERS,
    DEFAULT_MAX_READ_FAILURES,
    INGEST_FAILURES_ATTRIBUTE,
    INGEST_SUCCESSES_ATTRIBUTE,
    WRITE_MODE_APPEND,
    WRITE_MODE_MODIFY,
)

GEOMETRY_BINDINGS = (
    "Geometry",
    "Point",
    "LineString",
    "Polygon",
    "MultiPoint",
    "MultiLineString",
    "MultiPolygon",
    "GeometryCollection",
)


class CompatibilityMode(str, Enum):
    """Policy applied when an incoming schema drifts from the stored one."""

    EXACT = COMPATIBILITY_EXACT
    EXISTING = COMPATIBILITY_EXISTING
    UPDATE = COMPATIBILITY_UPDATE


class WriteMode(str, Enum):
    """Whether features are always appended or upserted by identifier."""

    APPEND = WRITE_MODE_APPEND
    MODIFY = WRITE_MODE_MODIFY


class SchemaCompatibility(str, Enum):
    """Result of comparing an incoming schema against the catalog."""

    DOES_NOT_EXIST = "does_not_exist"
    UNCHANGED = "unchanged"
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"


class ReconcileAction(str, Enum):
    """Action taken by the reconciler for one type name.

    ``FAIL`` is never returned in a result; the reconciler signals it by
    raising a ``SchemaError`` subclass.
    """

    CREATE = "create"
    NO_OP = "no_op"
    WARN = "warn"
    MIGRATE = "migrate"
    FAIL = "fail"


class BatchTransfer(str, Enum):
    """Host-facing routing decision for a processed batch."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class AttributeDescriptor:
    """One attribute of a feature schema.

    Attributes:
        name: Attribute name, unique within a schema.
        binding: Declared type name, e.g. ``String`` or ``Point``.
        is_default_geometry: Whether this is the schema's default geometry.
        options: Descriptor options such as ``srid``.
    """

    name: str
    binding: str
    is_default_geometry: bool = False
    options: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_geometry(self) -> bool:
        """Return whether the attribute holds a geometry value."""
        return self.binding in GEOMETRY_BINDINGS

    def same_definition(self, other: "AttributeDescriptor") -> bool:
        """Return whether two descriptors declare the same name, type and flags."""
        return (
            self.name == other.name
            and self.binding == other.binding
            and self.is_default_geometry == other.is_default_geometry
        )


@dataclass(frozen=True)
class FeatureSchema:
    """Named, ordered set of attribute descriptors.

    Attributes:
        type_name: Catalog key of the schema.
        attributes: Ordered attribute descriptors.
    """

    type_name: str
    attributes: tuple[AttributeDescriptor, ...]

    @property
    def attribute_names(self) -> tuple[str, ...]:
        """Return attribute names in declared order."""
        return tuple(attribute.name for attribute in self.attributes)

    @property
    def default_geometry(self) -> str | None:
        """Return the default geometry attribute name, if any."""
        for attribute in self.attributes:
            if attribute.is_default_geometry:
                return attribute.name
        for attribute in self.attributes:
            if attribute.is_geometry:
                return attribute.name
        return None

    def descriptor(self, name: str) -> AttributeDescriptor | None:
        """Return the descriptor for ``name`` or ``None`` when absent."""
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    def renamed(self, type_name: str) -> "FeatureSchema":
        """Return the same attribute layout under another type name."""
        return replace(self, type_name=type_name)


@dataclass(frozen=True)
class Feature:
    """Typed record conforming to a feature schema.

    Attributes:
        feature_id: Record identifier, unique within its type name.
        type_name: Schema type name the feature belongs to.
        attributes: Ordered attribute values by name.
        visibility: Optional visibility label.
        user_data: Optional user metadata.
        default_geometry: Name of the attribute holding the geometry.
    """

    feature_id: str
    type_name: str
    attributes: Mapping[str, object]
    visibility: str | None = None
    user_data: Mapping[str, object] = field(default_factory=dict)
    default_geometry: str | None = None

    @property
    def geometry(self) -> object | None:
        """Return the default geometry value, if the feature has one."""
        if self.default_geometry is None:
            return None
        return self.attributes.get(self.default_geometry)

    def project(self, schema: FeatureSchema) -> "Feature":
        """Return this feature restricted to the attributes of ``schema``.

        Attributes missing from the feature are written as ``None``.
        """
        attributes = {name: self.attributes.get(name) for name in schema.attribute_names}
        return replace(
            self,
            type_name=schema.type_name,
            attributes=attributes,
            default_geometry=schema.default_geometry,
        )

    def encode(self) -> str:
        """Encode the feature as ``id=value|value|...`` text for diagnostics."""
        values = "|".join("" if value is None else str(value) for value in self.attributes.values())
        return f"{self.feature_id}={values}"


@dataclass(frozen=True)
class IngestOptions:
    """Ingest pipeline options.

    Attributes:
        type_name: Optional type name override applied to converted schemas.
        unique_identifier_column: Attribute used to match records in modify mode.
        feature_id_column: Attribute carrying the feature identifier.
        geometry_columns: Optional spec string declaring geometry attributes.
        visibility_column: Attribute carrying the visibility label.
        write_mode: Append-only or modify (upsert) writes.
        schema_compatibility_mode: Handling of schema drift.
        writer_caching_enabled: Reuse writers between records and batches.
        writer_cache_idle_timeout: Seconds a cached writer may stay idle.
        batch_size: Maximum records read per batch.
        max_idle_writers: Idle writers kept per type name when caching.
        max_read_failures: Consecutive read failures tolerated per batch.
    """

    type_name: str | None = None
    unique_identifier_column: str | None = None
    feature_id_column: str | None = None
    geometry_columns: str | None = None
    visibility_column: str | None = None
    write_mode: WriteMode = WriteMode.APPEND
    schema_compatibility_mode: CompatibilityMode = CompatibilityMode.EXISTING
    writer_caching_enabled: bool = False
    writer_cache_idle_timeout: float = 300.0
    batch_size: int = DEFAULT_BATCH_SIZE
    max_idle_writers: int = DEFAULT_MAX_IDLE_WRITERS
    max_read_failures: int = DEFAULT_MAX_READ_FAILURES


@dataclass(frozen=True)
class ReconcileResult:
    """Reconciler decision for one type name.

    Attributes:
        action: Action taken against the catalog.
        target_schema: Schema features must be projected onto before writing.
    """

    action: ReconcileAction
    target_schema: FeatureSchema


@dataclass(frozen=True)
class IngestOutcome:
    """Per-batch success and failure tally.

    Attributes:
        success_count: Records written or updated.
        failure_count: Records that failed to read, convert or write.
        schema_errors: Schema-level errors keyed by the halted type name.
        read_failure_count: Failures that happened before a record was read;
            already included in ``failure_count``.
    """

    success_count: int = 0
    failure_count: int = 0
    schema_errors: Mapping[str, str] = field(default_factory=dict)
    read_failure_count: int = 0

    @property
    def total(self) -> int:
        """Return the number of records accounted for."""
        return self.success_count + self.failure_count

    @property
    def records_read(self) -> int:
        """Return the number of records successfully read from the source."""
        return self.total - self.read_failure_count

    def combined(self, other: "IngestOutcome") -> "IngestOutcome":
        """Return the sum of two tallies, keeping the first error per type name."""
        return IngestOutcome(
            success_count=self.success_count + other.success_count,
            failure_count=self.failure_count + other.failure_count,
            schema_errors={**other.schema_errors, **self.schema_errors},
            read_failure_count=self.read_failure_count + other.read_failure_count,
        )

    def as_attributes(self) -> dict[str, str]:
        """Return the tally as batch annotation attributes."""
        return {
            INGEST_SUCCESSES_ATTRIBUTE: str(self.success_count),
            INGEST_FAILURES_ATTRIBUTE: str(self.failure_count),
        }


@dataclass(frozen=True)
class BatchResult:
    """Outcome and routing decision returned to the host for one batch."""

    outcome: IngestOutcome
    transfer: BatchTransfer
