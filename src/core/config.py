"""Runtime configuration model for geoingest.

This module owns all environment variable parsing and validation,
and turns string-valued processor properties into typed ingest options.
Other modules consume typed objects instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Any, Mapping

from core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATA_ROOT,
    DEFAULT_MAX_IDLE_WRITERS,
    DEFAULT_MAX_READ_FAILURES,
    DEFAULT_WRITER_CACHE_TIMEOUT,
)
from core.errors import GeoIngestConfigError
from core.types import CompatibilityMode, IngestOptions, WriteMode

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")
_DURATION_UNITS = {
    "": 1.0,
    "ms": 0.001,
    "millis": 0.001,
    "milliseconds": 0.001,
    "s": 1.0,
    "sec": 1.0,
    "secs": 1.0,
    "second": 1.0,
    "seconds": 1.0,
    "m": 60.0,
    "min": 60.0,
    "mins": 60.0,
    "minute": 60.0,
    "minutes": 60.0,
    "h": 3600.0,
    "hr": 3600.0,
    "hour": 3600.0,
    "hours": 3600.0,
}
_TRUE_VALUES = ("true", "1", "yes")
_FALSE_VALUES = ("false", "0", "no")


@dataclass(frozen=True)
class GeoIngestConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for the file-backed feature store.
        batch_size: Default maximum number of records per batch.
        writer_cache_timeout: Default idle timeout for cached writers, in seconds.
    """

    data_root: Path
    batch_size: int
    writer_cache_timeout: float

    @classmethod
    def from_env(cls) -> "GeoIngestConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            GeoIngestConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("GEOINGEST_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        batch_size_value = os.getenv("GEOINGEST_BATCH_SIZE", str(DEFAULT_BATCH_SIZE))
        timeout_value = os.getenv("GEOINGEST_WRITER_CACHE_TIMEOUT", DEFAULT_WRITER_CACHE_TIMEOUT)
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            batch_size=_parse_positive_int("GEOINGEST_BATCH_SIZE", batch_size_value),
            writer_cache_timeout=parse_duration(timeout_value),
        )


def parse_duration(raw_value: str) -> float:
    """Parse a human duration such as ``5 minutes`` or ``250 ms``.

    Args:
        raw_value: Duration text; a bare number is read as seconds.

    Returns:
        Duration in seconds.

    Raises:
        GeoIngestConfigError: If the text is not a known duration.
    """
    match = _DURATION_PATTERN.match(raw_value)
    unit = match.group(2).lower() if match else ""
    if match is None or unit not in _DURATION_UNITS:
        raise GeoIngestConfigError(
            f"Invalid duration '{raw_value}': expected a number followed by "
            "ms, sec, min or hours, e.g. '5 minutes'."
        )
    return float(match.group(1)) * _DURATION_UNITS[unit]


def ingest_options_from_properties(
    properties: Mapping[str, str],
    config: GeoIngestConfig,
) -> IngestOptions:
    """Build ingest options from string-valued processor properties.

    Recognized keys mirror :class:`IngestOptions` field names with dashes,
    e.g. ``write-mode`` or ``writer-cache-idle-timeout``. Missing keys fall
    back to the runtime config defaults.

    Args:
        properties: Raw property values.
        config: Runtime configuration providing defaults.

    Returns:
        Validated ingest options.

    Raises:
        GeoIngestConfigError: If a property value is invalid.
    """
    caching = properties.get("writer-caching-enabled", "false")
    timeout = properties.get("writer-cache-idle-timeout")
    options = IngestOptions(
        type_name=_optional(properties.get("type-name")),
        unique_identifier_column=_optional(properties.get("unique-identifier-column")),
        feature_id_column=_optional(properties.get("feature-id-column")),
        geometry_columns=_optional(properties.get("geometry-columns")),
        visibility_column=_optional(properties.get("visibility-column")),
        write_mode=_parse_enum(WriteMode, "write-mode", properties.get("write-mode", "append")),
        schema_compatibility_mode=_parse_enum(
            CompatibilityMode,
            "schema-compatibility-mode",
            properties.get("schema-compatibility-mode", "existing"),
        ),
        writer_caching_enabled=_parse_bool("writer-caching-enabled", caching),
        writer_cache_idle_timeout=(
            parse_duration(timeout) if timeout is not None else config.writer_cache_timeout
        ),
        batch_size=_parse_positive_int(
            "batch-size", properties.get("batch-size", str(config.batch_size))
        ),
        max_idle_writers=_parse_positive_int(
            "max-idle-writers",
            properties.get("max-idle-writers", str(DEFAULT_MAX_IDLE_WRITERS)),
        ),
        max_read_failures=_parse_positive_int(
            "max-read-failures",
            properties.get("max-read-failures", str(DEFAULT_MAX_READ_FAILURES)),
        ),
    )
    validate_ingest_options(options)
    return options


def validate_ingest_options(options: IngestOptions) -> None:
    """Validate option values that cannot be checked by type alone.

    Args:
        options: Options to validate.

    Raises:
        GeoIngestConfigError: If an option is out of range.
    """
    if options.batch_size <= 0:
        raise GeoIngestConfigError(
            f"Invalid batch size {options.batch_size}: expected a positive integer."
        )
    if options.writer_cache_idle_timeout <= 0:
        raise GeoIngestConfigError(
            "Invalid writer cache idle timeout "
            f"{options.writer_cache_idle_timeout}: expected a positive duration."
        )
    if options.max_idle_writers <= 0:
        raise GeoIngestConfigError(
            f"Invalid max idle writers {options.max_idle_writers}: expected a positive integer."
        )
    if options.max_read_failures <= 0:
        raise GeoIngestConfigError(
            f"Invalid max read failures {options.max_read_failures}: "
            "expected a positive integer."
        )


def _optional(raw_value: str | None) -> str | None:
    if raw_value is None or not raw_value.strip():
        return None
    return raw_value.strip()


def _parse_enum(enum_type: Any, name: str, raw_value: str) -> Any:
    try:
        return enum_type(raw_value.strip().lower())
    except ValueError as error:
        allowed = [member.value for member in enum_type]
        raise GeoIngestConfigError(
            f"Invalid {name} value '{raw_value}': expected one of {allowed}."
        ) from error


def _parse_bool(name: str, raw_value: str) -> bool:
    lowered = raw_value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise GeoIngestConfigError(f"Invalid {name} value '{raw_value}': expected true or false.")


def _parse_positive_int(name: str, raw_value: str) -> int:
    """Parse a strictly positive integer.

    Raises:
        GeoIngestConfigError: If value is not a positive integer.
    """
    try:
        value = int(raw_value)
    except ValueError as error:
        raise GeoIngestConfigError(
            f"Invalid {name} value: expected integer, got '{raw_value}'."
        ) from error
    if value <= 0:
        raise GeoIngestConfigError(
            f"Invalid {name} value: expected a positive integer, got {value}."
        )
    return value
