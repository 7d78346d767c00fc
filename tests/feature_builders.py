"""Shared schema, feature and record builders for tests."""

from __future__ import annotations

from core.schema_spec import parse_schema_spec
from core.types import Feature, FeatureSchema, IngestOptions
from ingest.record_converter import MappingRecordConverter
from ingest.record_source import IterableRecordSource

BASE_SPEC = "name:String,count:Integer,*geom:Point"
EXTENDED_SPEC = "name:String,count:Integer,*geom:Point,color:String"


def build_schema(spec: str = BASE_SPEC, type_name: str = "points") -> FeatureSchema:
    """Parse a schema spec into a feature schema."""
    return parse_schema_spec(type_name, spec)


def build_feature(
    feature_id: str,
    name: str,
    count: int = 1,
    type_name: str = "points",
    **extra: object,
) -> Feature:
    """Build a point feature with the base attributes."""
    attributes: dict[str, object] = {"name": name, "count": count, "geom": "POINT (1 2)"}
    attributes.update(extra)
    return Feature(
        feature_id=feature_id,
        type_name=type_name,
        attributes=attributes,
        default_geometry="geom",
    )


def build_records(*names: str, **extra: object) -> list[dict[str, object]]:
    """Build raw point records keyed by attribute name."""
    return [
        {"fid": f"id-{name}", "name": name, "count": index, "geom": [index, index], **extra}
        for index, name in enumerate(names, 1)
    ]


def build_source(records: list[dict[str, object]]) -> IterableRecordSource:
    """Wrap raw records in a record source."""
    return IterableRecordSource(records)


def build_converter(spec: str = BASE_SPEC, type_name: str = "points") -> MappingRecordConverter:
    """Build a mapping converter for a schema spec."""
    return MappingRecordConverter(build_schema(spec, type_name))


def build_options(**overrides: object) -> IngestOptions:
    """Build ingest options keyed on the ``fid`` record column."""
    values: dict[str, object] = {"feature_id_column": "fid", "batch_size": 100}
    values.update(overrides)
    return IngestOptions(**values)  # type: ignore[arg-type]
