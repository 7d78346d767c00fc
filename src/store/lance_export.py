"""Lance dataset export for stored features.

This module converts the features of one type name to an Arrow table
typed from the feature schema and writes it as an Apache Lance dataset.
"""

from __future__ import annotations

from datetime import datetime
import json
from pathlib import Path
from typing import Any

from core.errors import GeoIngestDependencyError, StoreError
from core.logging_config import get_logger
from core.types import Feature, FeatureSchema
from store.catalog import FeatureCatalog

_LOGGER = get_logger(__name__)

_ARROW_TYPE_NAMES = {
    "String": "string",
    "Integer": "int32",
    "Long": "int64",
    "Float": "float32",
    "Double": "float64",
    "Boolean": "bool",
    "Date": "timestamp",
    "UUID": "string",
    "Bytes": "binary",
}


def export_type_to_lance(catalog: FeatureCatalog, type_name: str, output_dir: Path) -> int:
    """Write all features of a type name to a Lance dataset.

    Args:
        catalog: Catalog holding the features.
        type_name: Type name to export.
        output_dir: Lance dataset directory, overwritten when present.

    Returns:
        Number of exported features.

    Raises:
        GeoIngestDependencyError: If pyarrow or lance is missing.
        StoreError: If the schema is missing or the dataset write fails.
    """
    lance, pa = _import_lance()
    schema = catalog.get_schema(type_name)
    if schema is None:
        raise StoreError(f"Cannot export {type_name}: schema does not exist in the catalog.")
    features = list(catalog.query(type_name))
    table = pa.table(_build_columns(schema, features), schema=build_arrow_schema(pa, schema))
    try:
        output_dir.parent.mkdir(parents=True, exist_ok=True)
        lance.write_dataset(table, str(output_dir), mode="overwrite")
    except Exception as error:
        raise StoreError(
            f"Failed to write Lance dataset at {output_dir}: {error}. "
            "Validate lance/pyarrow compatibility and retry export."
        ) from error
    _LOGGER.info(
        "lance_export_completed",
        type_name=type_name,
        output_dir=str(output_dir),
        record_count=len(features),
    )
    return len(features)


def build_arrow_schema(pa: Any, schema: FeatureSchema) -> Any:
    """Build an Arrow schema for a feature schema.

    Geometries are stored as WKT strings; ``__fid__`` and ``__visibility__``
    columns carry the feature identifier and visibility label.

    Args:
        pa: Imported ``pyarrow`` module.
        schema: Feature schema.

    Returns:
        ``pyarrow.Schema`` instance.
    """
    fields = [pa.field("__fid__", pa.string()), pa.field("__visibility__", pa.string())]
    for attribute in schema.attributes:
        fields.append(pa.field(attribute.name, _arrow_type(pa, attribute.binding)))
    fields.append(pa.field("__user_data__", pa.string()))
    return pa.schema(fields)


def _build_columns(schema: FeatureSchema, features: list[Feature]) -> dict[str, list[Any]]:
    columns: dict[str, list[Any]] = {
        "__fid__": [feature.feature_id for feature in features],
        "__visibility__": [feature.visibility for feature in features],
    }
    for attribute in schema.attributes:
        columns[attribute.name] = [
            _coerce_value(attribute.binding, feature.attributes.get(attribute.name))
            for feature in features
        ]
    columns["__user_data__"] = [
        json.dumps(dict(feature.user_data), default=str) for feature in features
    ]
    return columns


def _arrow_type(pa: Any, binding: str) -> Any:
    type_name = _ARROW_TYPE_NAMES.get(binding, "string")
    if type_name == "timestamp":
        return pa.timestamp("ms", tz="UTC")
    return getattr(pa, type_name)()


def _coerce_value(binding: str, value: object) -> object:
    if value is None:
        return None
    if binding == "Date" and isinstance(value, str):
        return datetime.fromisoformat(value)
    if binding == "Bytes" and isinstance(value, str):
        return value.encode("utf-8")
    if _ARROW_TYPE_NAMES.get(binding, "string") == "string":
        return str(value)
    return value


def _import_lance() -> tuple[Any, Any]:
    """Import lance and pyarrow lazily.

    Raises:
        GeoIngestDependencyError: If either package is missing.
    """
    try:
        import lance
        import pyarrow as pa
    except ImportError as error:
        raise GeoIngestDependencyError(
            "Lance export requires pylance and pyarrow, but they are not installed. "
            "Install the 'lance' extra to export datasets."
        ) from error
    return lance, pa
