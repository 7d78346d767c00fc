"""Raw record to feature conversion.

This module defines the converter contract and a mapping converter
that coerces dictionary records onto a declared feature schema.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
import uuid

from core.errors import ConversionError, GeoIngestConfigError
from core.schema_spec import parse_schema_spec
from core.types import AttributeDescriptor, Feature, FeatureSchema, IngestOptions
from ingest.record_source import RawRecord, render_record

_WKT_PREFIXES = (
    "POINT",
    "LINESTRING",
    "POLYGON",
    "MULTIPOINT",
    "MULTILINESTRING",
    "MULTIPOLYGON",
    "GEOMETRYCOLLECTION",
)
_TRUE_TEXT = ("true", "1", "yes")
_FALSE_TEXT = ("false", "0", "no")


class RecordConverter(ABC):
    """Converts raw records into typed features."""

    @abstractmethod
    def schema(self, raw: RawRecord) -> FeatureSchema:
        """Return the schema ``raw`` converts to."""

    @abstractmethod
    def convert(self, raw: RawRecord, options: IngestOptions) -> Feature:
        """Convert one raw record.

        Raises:
            ConversionError: If the record does not fit the schema.
        """


class MappingRecordConverter(RecordConverter):
    """Converter for dictionary records keyed by attribute name."""

    def __init__(self, schema: FeatureSchema) -> None:
        self._schema = schema

    def schema(self, raw: RawRecord) -> FeatureSchema:
        return self._schema

    def convert(self, raw: RawRecord, options: IngestOptions) -> Feature:
        attributes: dict[str, object] = {}
        for attribute in self._schema.attributes:
            try:
                attributes[attribute.name] = coerce_value(attribute, raw.get(attribute.name))
            except (TypeError, ValueError) as error:
                raise ConversionError(
                    f"Invalid value for attribute {attribute.name} "
                    f"({attribute.binding}) in {self._schema.type_name}: {error}",
                    record_text=render_record(raw),
                ) from error
        return Feature(
            feature_id=_feature_id(raw, options),
            type_name=self._schema.type_name,
            attributes=attributes,
            visibility=_optional_text(raw, options.visibility_column),
            default_geometry=self._schema.default_geometry,
        )


def apply_geometry_columns(schema: FeatureSchema, geometry_columns: str | None) -> FeatureSchema:
    """Overlay geometry column declarations onto a schema.

    Args:
        schema: Base schema.
        geometry_columns: Spec string such as ``*geom:Point:srid=4326``;
            declarations replace same-named attributes or are appended.

    Returns:
        Schema including the declared geometry columns.

    Raises:
        GeoIngestConfigError: If a declared column is not a geometry.
    """
    if not geometry_columns:
        return schema
    declared = parse_schema_spec(schema.type_name, geometry_columns).attributes
    for attribute in declared:
        if not attribute.is_geometry:
            raise GeoIngestConfigError(
                f"Geometry column '{attribute.name}' has non-geometry type {attribute.binding}."
            )
    by_name = {attribute.name: attribute for attribute in declared}
    has_new_default = any(attribute.is_default_geometry for attribute in declared)
    merged: list[AttributeDescriptor] = []
    for attribute in schema.attributes:
        replacement = by_name.pop(attribute.name, None)
        if replacement is not None:
            merged.append(replacement)
        elif has_new_default and attribute.is_default_geometry:
            merged.append(
                AttributeDescriptor(attribute.name, attribute.binding, False, attribute.options)
            )
        else:
            merged.append(attribute)
    merged.extend(by_name.values())
    return FeatureSchema(type_name=schema.type_name, attributes=tuple(merged))


def coerce_value(attribute: AttributeDescriptor, value: object) -> object:
    """Coerce a raw value to an attribute's declared type.

    Raises:
        ValueError: If the value cannot represent the declared type.
        TypeError: If the value has an unsupported type.
    """
    if value is None or value == "":
        return None
    if attribute.is_geometry:
        return _coerce_geometry(value)
    binding = attribute.binding
    if binding in ("Integer", "Long"):
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)  # type: ignore[call-overload]
    if binding in ("Float", "Double"):
        if isinstance(value, bool):
            raise ValueError(f"expected a number, got {value!r}")
        return float(value)  # type: ignore[arg-type]
    if binding == "Boolean":
        return _coerce_bool(value)
    if binding == "Date":
        return _coerce_date(value)
    if binding == "UUID":
        return str(uuid.UUID(str(value)))
    if binding == "Bytes":
        return value if isinstance(value, bytes) else str(value).encode("utf-8")
    return str(value)


def _coerce_geometry(value: object) -> str:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        x, y = (float(coordinate) for coordinate in value)
        return f"POINT ({x} {y})"
    if isinstance(value, str) and value.strip().upper().startswith(_WKT_PREFIXES):
        return value.strip()
    raise ValueError(f"expected WKT text or an [x, y] pair, got {value!r}")


def _coerce_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_TEXT:
        return True
    if lowered in _FALSE_TEXT:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


def _coerce_date(value: object) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise TypeError(f"expected ISO-8601 text or epoch millis, got {value!r}")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _feature_id(raw: RawRecord, options: IngestOptions) -> str:
    if options.feature_id_column is None:
        return uuid.uuid4().hex
    value = raw.get(options.feature_id_column)
    if value is None or value == "":
        raise ConversionError(
            f"Record is missing feature id column '{options.feature_id_column}'.",
            record_text=render_record(raw),
        )
    return str(value)


def _optional_text(raw: RawRecord, column: str | None) -> str | None:
    if column is None:
        return None
    value = raw.get(column)
    return None if value is None or value == "" else str(value)
