"""YAML ingest properties files.

A properties file is a flat YAML mapping using the same dashed keys
accepted by :func:`core.config.ingest_options_from_properties`, e.g.::

    write-mode: modify
    unique-identifier-column: name
    writer-caching-enabled: true
    writer-cache-idle-timeout: 30 sec
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, cast

from core.errors import GeoIngestConfigError, GeoIngestDependencyError

KNOWN_PROPERTY_KEYS = (
    "type-name",
    "unique-identifier-column",
    "feature-id-column",
    "geometry-columns",
    "visibility-column",
    "write-mode",
    "schema-compatibility-mode",
    "writer-caching-enabled",
    "writer-cache-idle-timeout",
    "batch-size",
    "max-idle-writers",
    "max-read-failures",
)


def load_ingest_properties(properties_path: str) -> dict[str, str]:
    """Load ingest properties from a YAML file.

    Args:
        properties_path: Path to a YAML mapping of property names to values.

    Returns:
        Property values rendered as strings.

    Raises:
        GeoIngestDependencyError: If PyYAML is unavailable.
        GeoIngestConfigError: If the file is missing, invalid, or has unknown keys.
    """
    payload = _load_yaml_payload(properties_path)
    if not isinstance(payload, Mapping):
        raise GeoIngestConfigError(
            f"Invalid properties file {properties_path}: expected a mapping of "
            f"property names to values, got {type(payload).__name__}."
        )
    properties: dict[str, str] = {}
    for key, value in payload.items():
        if key not in KNOWN_PROPERTY_KEYS:
            raise GeoIngestConfigError(
                f"Unknown ingest property '{key}' in {properties_path}. "
                f"Supported properties: {', '.join(KNOWN_PROPERTY_KEYS)}."
            )
        if value is None:
            continue
        properties[key] = _render_value(value)
    return properties


def _render_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _load_yaml_payload(properties_path: str) -> object:
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as error:  # pragma: no cover - dependency failure
        raise GeoIngestDependencyError(
            "Properties files require PyYAML. Install with 'pip install pyyaml'."
        ) from error
    properties_file = Path(properties_path).expanduser().resolve()
    if not properties_file.exists():
        raise GeoIngestConfigError(
            f"Properties file does not exist at {properties_file}. Provide a valid YAML file path."
        )
    try:
        payload = cast(object, yaml.safe_load(properties_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise GeoIngestConfigError(
            f"Failed to read properties at {properties_file}: {error}. "
            "Check file permissions and retry."
        ) from error
    except Exception as error:
        raise GeoIngestConfigError(
            f"Failed to parse YAML properties at {properties_file}: {error}. "
            "Fix YAML syntax and retry."
        ) from error
    if payload is None:
        return {}
    return payload
