"""Unit tests for Lance dataset export."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.errors import StoreError
from core.schema_spec import parse_schema_spec
from core.types import Feature
from store.lance_export import build_arrow_schema, export_type_to_lance
from store.memory_catalog import InMemoryCatalog


def _catalog_with_feature() -> InMemoryCatalog:
    catalog = InMemoryCatalog()
    catalog.create_schema(parse_schema_spec("points", "name:String,dtg:Date,*geom:Point"))
    channel = catalog.open_append_writer("points")
    channel.write(
        Feature(
            feature_id="f-1",
            type_name="points",
            attributes={
                "name": "alpha",
                "dtg": datetime(2024, 3, 1, tzinfo=timezone.utc),
                "geom": "POINT (1 2)",
            },
            visibility="public",
        )
    )
    channel.close()
    return catalog


def test_build_arrow_schema_maps_bindings() -> None:
    """Arrow schema should carry id, visibility, typed attributes and user data."""
    pa = pytest.importorskip("pyarrow")
    schema = parse_schema_spec("points", "name:String,count:Long,dtg:Date,*geom:Point")

    arrow_schema = build_arrow_schema(pa, schema)

    assert (
        arrow_schema.names
        == ["__fid__", "__visibility__", "name", "count", "dtg", "geom", "__user_data__"]
        and arrow_schema.field("count").type == pa.int64()
        and arrow_schema.field("dtg").type == pa.timestamp("ms", tz="UTC")
    )


def test_export_type_to_lance_writes_dataset(tmp_path) -> None:
    """Export should write every stored feature to a Lance dataset."""
    lance = pytest.importorskip("lance")
    pytest.importorskip("pyarrow")
    output_dir = tmp_path / "exports" / "points.lance"

    exported = export_type_to_lance(_catalog_with_feature(), "points", output_dir)

    table = lance.dataset(str(output_dir)).to_table()
    assert exported == 1 and table.column("__fid__").to_pylist() == ["f-1"]


def test_export_type_to_lance_requires_schema(tmp_path) -> None:
    """Exporting an unknown type name should raise a store error."""
    pytest.importorskip("lance")
    pytest.importorskip("pyarrow")

    with pytest.raises(StoreError):
        export_type_to_lance(InMemoryCatalog(), "missing", tmp_path / "out.lance")
