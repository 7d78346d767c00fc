"""Unit tests for the schema spec-string codec."""

from __future__ import annotations

import pytest

from core.errors import GeoIngestConfigError
from core.schema_spec import encode_schema, parse_schema_spec


def test_parse_schema_spec_reads_types_and_options() -> None:
    """Parsing should keep attribute order, bindings and options."""
    schema = parse_schema_spec("points", "name:String,dtg:Date,*geom:Point:srid=4326")

    geom = schema.descriptor("geom")
    assert (
        schema.attribute_names == ("name", "dtg", "geom")
        and geom is not None
        and geom.is_default_geometry
        and dict(geom.options) == {"srid": "4326"}
    )


def test_parse_schema_spec_normalizes_aliases() -> None:
    """Lower-case type aliases should resolve to canonical bindings."""
    schema = parse_schema_spec("points", "count:int,ok:bool,shape:polygon")

    assert [attribute.binding for attribute in schema.attributes] == [
        "Integer",
        "Boolean",
        "Polygon",
    ]


def test_encode_schema_round_trips_spec_text() -> None:
    """Encoding a parsed schema should reproduce the canonical spec."""
    spec = "name:String,count:Integer,*geom:Point:srid=4326"

    assert encode_schema(parse_schema_spec("points", spec)) == spec


def test_default_geometry_falls_back_to_first_geometry() -> None:
    """A schema without a starred geometry should use its first geometry."""
    schema = parse_schema_spec("points", "name:String,geom:Point,area:Polygon")

    assert schema.default_geometry == "geom"


@pytest.mark.parametrize(
    "spec",
    [
        "",
        "name",
        "name:Unknown",
        "*name:String",
        "name:String,name:Integer",
        "*a:Point,*b:Point",
        "geom:Point:srid",
    ],
)
def test_parse_schema_spec_rejects_invalid_specs(spec: str) -> None:
    """Malformed specs should raise a config error."""
    with pytest.raises(GeoIngestConfigError):
        parse_schema_spec("points", spec)
