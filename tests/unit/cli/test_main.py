"""Unit tests for CLI command handling."""

from __future__ import annotations

import pytest

from cli.main import build_parser, main
from store.local_catalog import LocalCatalog
from tests.fixture_paths import POINTS_SCHEMA_SPEC, fixture_path


def _ingest_args(data_root, *extra: str) -> list[str]:
    return [
        "--data-root",
        str(data_root),
        "ingest",
        str(fixture_path("records/points.jsonl")),
        "--type-name",
        "points",
        "--schema",
        POINTS_SCHEMA_SPEC,
        "--feature-id-column",
        "fid",
        *extra,
    ]


def test_cli_ingest_prints_counts(tmp_path, capsys) -> None:
    """CLI ingest should print success and failure counts."""
    exit_code = main(_ingest_args(tmp_path))
    output = capsys.readouterr().out.splitlines()

    assert (exit_code, output) == (
        0,
        ["geoingest.ingest.successes=3", "geoingest.ingest.failures=0"],
    )


def test_cli_ingest_reports_bad_records(tmp_path, capsys) -> None:
    """Unconvertible records should be counted as failures without failing the command."""
    args = _ingest_args(tmp_path)
    args[3] = str(fixture_path("records/points_with_errors.jsonl"))

    exit_code = main(args)
    output = capsys.readouterr().out

    assert exit_code == 0 and "geoingest.ingest.failures=2" in output


def test_cli_exact_mode_drift_exits_nonzero(tmp_path, capsys) -> None:
    """A halted type name should print the schema error and exit with 1."""
    main(_ingest_args(tmp_path))
    args = _ingest_args(tmp_path, "--schema-compatibility-mode", "exact")
    args[args.index(POINTS_SCHEMA_SPEC)] = POINTS_SCHEMA_SPEC + ",color:String"
    capsys.readouterr()

    exit_code = main(args)
    output = capsys.readouterr().out

    assert exit_code == 1 and "schema_error[points]=" in output


def test_cli_update_modifies_stored_features(tmp_path, capsys) -> None:
    """CLI update should count matched and unmatched records."""
    main(_ingest_args(tmp_path))
    capsys.readouterr()
    args = [
        "--data-root",
        str(tmp_path),
        "update",
        str(fixture_path("records/point_updates.jsonl")),
        "--type-name",
        "points",
        "--schema",
        "name:String,count:Integer",
        "--unique-identifier-column",
        "name",
    ]

    exit_code = main(args)
    output = capsys.readouterr().out.splitlines()

    assert (exit_code, output) == (
        0,
        ["geoingest.ingest.successes=1", "geoingest.ingest.failures=1"],
    )


def test_cli_update_without_identifier_column_fails(tmp_path, capsys) -> None:
    """Update without a unique identifier column should print an error."""
    main(_ingest_args(tmp_path))
    capsys.readouterr()
    args = [
        "--data-root",
        str(tmp_path),
        "update",
        str(fixture_path("records/point_updates.jsonl")),
        "--type-name",
        "points",
        "--schema",
        "name:String,count:Integer",
    ]

    exit_code = main(args)
    output = capsys.readouterr().out

    assert exit_code == 1 and output.startswith("error:")


def test_cli_schema_lists_stored_types(tmp_path, capsys) -> None:
    """Schema command should print one line per stored type."""
    main(_ingest_args(tmp_path))
    capsys.readouterr()

    exit_code = main(["--data-root", str(tmp_path), "schema"])
    output = capsys.readouterr().out.splitlines()

    assert exit_code == 0 and len(output) == 1 and output[0].startswith("points\t")


def test_cli_schema_unknown_type_fails(tmp_path, capsys) -> None:
    """Describing an unknown type should exit with 1."""
    exit_code = main(["--data-root", str(tmp_path), "schema", "--type-name", "missing"])
    output = capsys.readouterr().out

    assert exit_code == 1 and "missing" in output


def test_cli_export_unknown_type_fails(tmp_path, capsys) -> None:
    """Exporting an unknown type should exit with 1."""
    exit_code = main(["--data-root", str(tmp_path), "export", "--type-name", "missing"])
    output = capsys.readouterr().out

    assert exit_code == 1 and output.startswith("error:")


def _stored_count(data_root) -> int:
    catalog = LocalCatalog(data_root)
    try:
        return len(list(catalog.query("points")))
    finally:
        catalog.dispose()


def test_cli_properties_file_is_applied(tmp_path, capsys) -> None:
    """Modify mode from a properties file should upsert on re-ingest."""
    args = _ingest_args(
        tmp_path, "--properties-file", str(fixture_path("properties/modify.yaml"))
    )
    main(args)

    exit_code = main(args)

    assert (exit_code, _stored_count(tmp_path)) == (0, 3)


def test_cli_flags_override_properties_file(tmp_path, capsys) -> None:
    """An explicit write mode flag should win over the properties file."""
    args = _ingest_args(
        tmp_path,
        "--properties-file",
        str(fixture_path("properties/modify.yaml")),
        "--write-mode",
        "append",
    )
    main(args)

    main(args)

    assert _stored_count(tmp_path) == 6


def test_cli_rejects_unknown_properties(tmp_path, capsys) -> None:
    """Unknown keys in a properties file should fail the command."""
    args = _ingest_args(
        tmp_path, "--properties-file", str(fixture_path("properties/unknown_key.yaml"))
    )

    exit_code = main(args)
    output = capsys.readouterr().out

    assert exit_code == 1 and "dataset-name" in output


def test_parser_rejects_unknown_write_mode() -> None:
    """Invalid write modes should be rejected by argparse."""
    parser = build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(_ingest_args("root", "--write-mode", "replace"))
