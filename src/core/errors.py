"""geoingest exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Record-level errors are recovered by the coordinator and counted,
schema-level errors halt a type name, store errors halt startup.
"""

from __future__ import annotations


class GeoIngestError(Exception):
    """Base exception for all geoingest failures."""


class GeoIngestConfigError(GeoIngestError):
    """Raised for invalid runtime configuration or ingest options."""


class GeoIngestDependencyError(GeoIngestError):
    """Raised when an optional runtime dependency is missing."""


class RecordReadError(GeoIngestError):
    """Raised by a record source when one record cannot be read."""


class ConversionError(GeoIngestError):
    """Raised when a raw record cannot be converted into a feature."""

    def __init__(self, message: str, record_text: str = "") -> None:
        super().__init__(message)
        self.record_text = record_text


class FeatureWriteError(GeoIngestError):
    """Raised when a feature cannot be written to the store."""


class SchemaError(GeoIngestError):
    """Base class for schema catalog and reconciliation failures."""

    def __init__(self, message: str, type_name: str) -> None:
        super().__init__(message)
        self.type_name = type_name


class SchemaDriftError(SchemaError):
    """Raised when a schema changed but the compatibility mode forbids it."""

    def __init__(self, type_name: str, from_spec: str, to_spec: str) -> None:
        super().__init__(
            f"Detected schema change for {type_name} but compatibility mode is set to "
            f"'exact': from '{from_spec}' to '{to_spec}'. Use compatibility mode "
            "'existing' or 'update' to accept the change.",
            type_name,
        )
        self.from_spec = from_spec
        self.to_spec = to_spec


class SchemaIncompatibleError(SchemaError):
    """Raised when an incoming schema conflicts with the stored schema."""


class SchemaNotFoundError(SchemaError):
    """Raised when a schema is required but missing from the catalog."""


class SchemaExistsError(SchemaError):
    """Raised by a catalog when creating a schema that already exists."""


class StoreError(GeoIngestError):
    """Raised for feature store read and write failures."""


class StoreUnavailableError(StoreError):
    """Raised when the feature store cannot be opened at startup."""


class WriterPoolClosedError(StoreError):
    """Raised when borrowing from a writer pool that has been closed."""
