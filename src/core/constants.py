"""Core constants used across geoingest modules.

This module centralizes option defaults and on-disk layout names.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".geoingest")
CATALOG_FILE_NAME = "catalog.json"
TYPES_DIR_NAME = "types"
RECORDS_FILE_NAME = "records.jsonl"
EXPORTS_DIR_NAME = "exports"
LANCE_DIR_NAME = "data.lance"
DEFAULT_BATCH_SIZE = 5
DEFAULT_WRITER_CACHE_TIMEOUT = "5 minutes"
DEFAULT_MAX_IDLE_WRITERS = 16
DEFAULT_MAX_READ_FAILURES = 100
MIN_EVICTION_INTERVAL_SECONDS = 1.0
EVICTION_INTERVAL_DIVISOR = 5
WRITE_MODE_APPEND = "append"
WRITE_MODE_MODIFY = "modify"
COMPATIBILITY_EXACT = "exact"
COMPATIBILITY_EXISTING = "existing"
COMPATIBILITY_UPDATE = "update"
INGEST_SUCCESSES_ATTRIBUTE = "geoingest.ingest.successes"
INGEST_FAILURES_ATTRIBUTE = "geoingest.ingest.failures"
SENSITIVE_PARAM_MARKERS = ("password", "secret", "token", "credential")
