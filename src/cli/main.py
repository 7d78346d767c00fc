"""geoingest CLI entry points.
This module exposes ingest, update, schema and export commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Sequence

from core.config import GeoIngestConfig, ingest_options_from_properties
from core.constants import DEFAULT_WRITER_CACHE_TIMEOUT
from core.errors import GeoIngestError
from core.logging_config import get_logger
from core.properties_file import load_ingest_properties
from core.schema_spec import encode_schema
from core.types import BatchResult, BatchTransfer, CompatibilityMode, IngestOptions, WriteMode
from store.feature_sdk import GeoIngestClient

_LOGGER = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="geoingest", description="geoingest feature store CLI")
    parser.add_argument("--data-root", help="Override GEOINGEST_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_ingest_command(subparsers)
    _add_update_command(subparsers)
    _add_schema_command(subparsers)
    _add_export_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the geoingest CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        client = _build_client(args.data_root)
        if args.command == "ingest":
            return _run_ingest_command(client, args)
        if args.command == "update":
            return _run_update_command(client, args)
        if args.command == "schema":
            return _run_schema_command(client, args)
        if args.command == "export":
            return _run_export_command(client, args)
    except GeoIngestError as error:
        _LOGGER.error("command_failed", command=args.command, error=str(error))
        print(f"error: {error}")
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(data_root: str | None) -> GeoIngestClient:
    """Build SDK client with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    client = GeoIngestClient(GeoIngestConfig.from_env())
    if data_root:
        return client.with_data_root(data_root)
    return client


def _run_ingest_command(client: GeoIngestClient, args: argparse.Namespace) -> int:
    """Handle ingest command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    options = _build_options(client, args)
    result = client.ingest_file(Path(args.source), args.schema, options)
    return _print_batch_result(result)


def _run_update_command(client: GeoIngestClient, args: argparse.Namespace) -> int:
    """Handle update command."""
    options = _build_options(client, args)
    result = client.update_file(Path(args.source), args.schema, options)
    return _print_batch_result(result)


def _run_schema_command(client: GeoIngestClient, args: argparse.Namespace) -> int:
    """Handle schema command."""
    schemas = [client.describe(args.type_name)] if args.type_name else client.schemas()
    for schema in schemas:
        print(f"{schema.type_name}\t{encode_schema(schema)}")
    return 0


def _run_export_command(client: GeoIngestClient, args: argparse.Namespace) -> int:
    """Handle export command."""
    output_dir = Path(args.output_dir) if args.output_dir else None
    exported = client.export_lance(args.type_name, output_dir)
    print(f"exported={exported}")
    return 0


def _build_options(client: GeoIngestClient, args: argparse.Namespace) -> IngestOptions:
    """Translate parsed arguments into validated ingest options."""
    flags = {
        "type-name": args.type_name,
        "unique-identifier-column": args.unique_identifier_column,
        "feature-id-column": args.feature_id_column,
        "geometry-columns": args.geometry_columns,
        "visibility-column": args.visibility_column,
        "write-mode": getattr(args, "write_mode", None),
        "schema-compatibility-mode": getattr(args, "schema_compatibility_mode", None),
        "writer-caching-enabled": "true" if getattr(args, "writer_caching", False) else None,
        "writer-cache-idle-timeout": getattr(args, "writer_cache_idle_timeout", None),
        "batch-size": None if args.batch_size is None else str(args.batch_size),
    }
    properties = load_ingest_properties(args.properties_file) if args.properties_file else {}
    properties.update({key: value for key, value in flags.items() if value is not None})
    return ingest_options_from_properties(properties, client.config)


def _print_batch_result(result: BatchResult) -> int:
    for key, value in result.outcome.as_attributes().items():
        print(f"{key}={value}")
    for type_name, error in sorted(result.outcome.schema_errors.items()):
        print(f"schema_error[{type_name}]={error}")
    return 0 if result.transfer == BatchTransfer.SUCCESS else 1


def _add_record_arguments(parser: argparse.ArgumentParser) -> None:
    """Register arguments shared by record-consuming commands."""
    parser.add_argument("source", help="JSONL file with one record object per line")
    parser.add_argument("--type-name", required=True, help="Feature type name")
    parser.add_argument(
        "--schema",
        required=True,
        help="Record schema spec, e.g. 'name:String,dtg:Date,*geom:Point:srid=4326'",
    )
    parser.add_argument("--feature-id-column", help="Attribute holding the feature id")
    parser.add_argument("--geometry-columns", help="Geometry column spec overlaying the schema")
    parser.add_argument("--visibility-column", help="Attribute holding the visibility label")
    parser.add_argument("--batch-size", type=int, help="Records read per batch")
    parser.add_argument(
        "--properties-file",
        help="YAML file of ingest properties; explicit flags take precedence",
    )


def _add_ingest_command(subparsers: Any) -> None:
    """Register ingest subcommand."""
    parser = subparsers.add_parser("ingest", help="Ingest records into the feature store")
    _add_record_arguments(parser)
    parser.add_argument(
        "--write-mode",
        choices=[mode.value for mode in WriteMode],
        help="Append new features or upsert by identifier (default: append)",
    )
    parser.add_argument(
        "--unique-identifier-column",
        help="Attribute matching existing features in modify mode (default: feature id)",
    )
    parser.add_argument(
        "--schema-compatibility-mode",
        choices=[mode.value for mode in CompatibilityMode],
        help="How to handle a schema that differs from the stored one (default: existing)",
    )
    parser.add_argument(
        "--writer-caching",
        action="store_true",
        help="Reuse writers between records",
    )
    parser.add_argument(
        "--writer-cache-idle-timeout",
        help=f"Idle time before cached writers close (default: {DEFAULT_WRITER_CACHE_TIMEOUT})",
    )


def _add_update_command(subparsers: Any) -> None:
    """Register update subcommand."""
    parser = subparsers.add_parser("update", help="Update attributes of stored features")
    _add_record_arguments(parser)
    parser.add_argument(
        "--unique-identifier-column",
        help="Attribute matching stored features; required here or in --properties-file",
    )


def _add_schema_command(subparsers: Any) -> None:
    """Register schema subcommand."""
    parser = subparsers.add_parser("schema", help="List or describe stored schemas")
    parser.add_argument("--type-name", help="Describe only this type name")


def _add_export_command(subparsers: Any) -> None:
    """Register export subcommand."""
    parser = subparsers.add_parser("export", help="Export a type name to a Lance dataset")
    parser.add_argument("--type-name", required=True, help="Feature type name")
    parser.add_argument("--output-dir", help="Lance dataset directory (default: under data root)")
