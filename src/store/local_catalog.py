"""File-backed feature catalog.

This module persists schema definitions in a JSON catalog file and
features as per-type JSONL record files under a local data root.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path
import re
import threading
from typing import IO, Any, Iterator

from core.constants import CATALOG_FILE_NAME, RECORDS_FILE_NAME, TYPES_DIR_NAME
from core.errors import SchemaExistsError, SchemaNotFoundError, StoreError
from core.logging_config import get_logger
from core.schema_spec import encode_schema, parse_schema_spec
from core.types import Feature, FeatureSchema
from store.catalog import AppendChannel, FeatureCatalog, ModifyChannel, fit_feature
from store.filters import QueryFilter

_LOGGER = get_logger(__name__)
_TYPE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalCatalog(FeatureCatalog):
    """Catalog persisted under a local directory.

    Appends are streamed to ``types/<type_name>/records.jsonl``; in-place
    replacements rewrite that file while holding the catalog lock.
    """

    def __init__(self, root: Path) -> None:
        """Open or create a catalog directory.

        Args:
            root: Catalog root directory.

        Raises:
            StoreError: If the directory or catalog file cannot be used.
        """
        self._root = root
        self._lock = threading.RLock()
        self._disposed = False
        try:
            (root / TYPES_DIR_NAME).mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise StoreError(
                f"Failed to open catalog at {root}: {error}. "
                "Check the data root path and write permissions."
            ) from error
        self._catalog_path = root / CATALOG_FILE_NAME
        self._schemas = _read_schema_catalog(self._catalog_path)

    @property
    def root(self) -> Path:
        """Return the catalog root directory."""
        return self._root

    def get_schema(self, type_name: str) -> FeatureSchema | None:
        with self._lock:
            self._check_open()
            return self._schemas.get(type_name)

    def create_schema(self, schema: FeatureSchema) -> None:
        _validate_type_name(schema.type_name)
        with self._lock:
            self._check_open()
            if schema.type_name in self._schemas:
                raise SchemaExistsError(
                    f"Schema {schema.type_name} already exists in catalog {self._root}.",
                    schema.type_name,
                )
            self._records_path(schema.type_name).parent.mkdir(parents=True, exist_ok=True)
            self._records_path(schema.type_name).touch()
            self._schemas[schema.type_name] = schema
            self._write_catalog()

    def update_schema(self, type_name: str, schema: FeatureSchema) -> None:
        with self._lock:
            self._check_open()
            self._require_schema(type_name)
            self._schemas[type_name] = schema.renamed(type_name)
            self._write_catalog()

    def type_names(self) -> list[str]:
        with self._lock:
            return sorted(self._schemas)

    def open_append_writer(self, type_name: str) -> AppendChannel:
        with self._lock:
            self._check_open()
            schema = self._require_schema(type_name)
            records_path = self._records_path(type_name)
            try:
                stream = records_path.open("a", encoding="utf-8")
            except OSError as error:
                raise StoreError(
                    f"Failed to open records for {type_name} at {records_path}: {error}."
                ) from error
        return _LocalAppendChannel(self._lock, schema, stream)

    def query(self, type_name: str, query_filter: QueryFilter | None = None) -> Iterator[Feature]:
        with self._lock:
            self._check_open()
            self._require_schema(type_name)
            features = _read_records(self._records_path(type_name), type_name)
        for feature in features:
            if query_filter is None or query_filter.matches(feature):
                yield feature

    def open_modify_writer(self, type_name: str, query_filter: QueryFilter) -> ModifyChannel:
        self._lock.acquire()
        try:
            self._check_open()
            schema = self._require_schema(type_name)
            records_path = self._records_path(type_name)
            features = _read_records(records_path, type_name)
        except Exception:
            self._lock.release()
            raise
        return _LocalModifyChannel(self._lock, schema, records_path, features, query_filter)

    def dispose(self) -> None:
        with self._lock:
            self._disposed = True

    def _records_path(self, type_name: str) -> Path:
        return self._root / TYPES_DIR_NAME / type_name / RECORDS_FILE_NAME

    def _require_schema(self, type_name: str) -> FeatureSchema:
        schema = self._schemas.get(type_name)
        if schema is None:
            raise SchemaNotFoundError(
                f"Schema {type_name} does not exist in catalog {self._root}. "
                "Create it before writing.",
                type_name,
            )
        return schema

    def _check_open(self) -> None:
        if self._disposed:
            raise StoreError(f"Catalog at {self._root} has been disposed. Open a new catalog.")

    def _write_catalog(self) -> None:
        """Persist schema definitions to the catalog file.

        Raises:
            StoreError: If the catalog file cannot be written.
        """
        updated_at = datetime.now(timezone.utc).isoformat()
        payload = {
            "schemas": {
                type_name: {"spec": encode_schema(schema), "updated_at": updated_at}
                for type_name, schema in sorted(self._schemas.items())
            }
        }
        try:
            self._catalog_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        except OSError as error:
            raise StoreError(
                f"Failed to persist catalog at {self._catalog_path}: {error}. "
                "Check write permissions and available disk space."
            ) from error


class _LocalAppendChannel(AppendChannel):
    def __init__(self, lock: threading.RLock, schema: FeatureSchema, stream: IO[str]) -> None:
        self._lock = lock
        self._schema = schema
        self._stream = stream

    def write(self, feature: Feature) -> None:
        if self._stream.closed:
            raise StoreError(f"Append channel for {self._schema.type_name} is closed.")
        line = json.dumps(_payload_from_feature(fit_feature(self._schema, feature)), default=str)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()


class _LocalModifyChannel(ModifyChannel):
    def __init__(
        self,
        lock: threading.RLock,
        schema: FeatureSchema,
        records_path: Path,
        features: list[Feature],
        query_filter: QueryFilter,
    ) -> None:
        self._lock = lock
        self._schema = schema
        self._records_path = records_path
        self._features = features
        self._query_filter = query_filter
        self._dirty = False
        self._closed = False

    def __iter__(self) -> Iterator[Feature]:
        for feature in list(self._features):
            if self._query_filter.matches(feature):
                yield feature

    def replace(self, current: Feature, replacement: Feature) -> None:
        for index, feature in enumerate(self._features):
            if feature is current:
                self._features[index] = fit_feature(self._schema, replacement)
                self._dirty = True
                return
        raise StoreError(
            f"Feature {current.feature_id} is not part of this {self._schema.type_name} channel."
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._dirty:
                _rewrite_records(self._records_path, self._features)
        finally:
            self._lock.release()


def _validate_type_name(type_name: str) -> None:
    if not _TYPE_NAME_PATTERN.match(type_name):
        raise StoreError(
            f"Invalid type name '{type_name}' for a local catalog: use letters, digits, "
            "'_', '.' or '-'."
        )


def _read_schema_catalog(catalog_path: Path) -> dict[str, FeatureSchema]:
    """Read schema definitions from the catalog file.

    Raises:
        StoreError: If the catalog file is invalid.
    """
    if not catalog_path.exists():
        return {}
    try:
        payload = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise StoreError(
            f"Failed to parse catalog at {catalog_path}: {error.msg}. "
            "Restore the catalog file or remove it to start empty."
        ) from error
    schemas_payload = payload.get("schemas") if isinstance(payload, dict) else None
    if not isinstance(schemas_payload, dict):
        raise StoreError(
            f"Failed to parse catalog at {catalog_path}: expected a 'schemas' object."
        )
    return {
        str(type_name): parse_schema_spec(str(type_name), str(entry["spec"]))
        for type_name, entry in schemas_payload.items()
    }


def _read_records(records_path: Path, type_name: str) -> list[Feature]:
    """Load stored features for one type name.

    Raises:
        StoreError: If a record line is not valid JSON.
    """
    if not records_path.exists():
        return []
    features: list[Feature] = []
    for line_number, line in enumerate(records_path.read_text(encoding="utf-8").splitlines(), 1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as error:
            raise StoreError(
                f"Failed to parse record at {records_path}:{line_number}: {error.msg}."
            ) from error
        features.append(_feature_from_payload(type_name, payload))
    return features


def _rewrite_records(records_path: Path, features: list[Feature]) -> None:
    # truncate in place so append channels opened on this file stay valid
    lines = [json.dumps(_payload_from_feature(feature), default=str) for feature in features]
    try:
        records_path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    except OSError as error:
        raise StoreError(f"Failed to rewrite records at {records_path}: {error}.") from error
    _LOGGER.debug("records_rewritten", path=str(records_path), record_count=len(features))


def _payload_from_feature(feature: Feature) -> dict[str, Any]:
    return {
        "id": feature.feature_id,
        "attributes": dict(feature.attributes),
        "visibility": feature.visibility,
        "user_data": dict(feature.user_data),
        "default_geometry": feature.default_geometry,
    }


def _feature_from_payload(type_name: str, payload: dict[str, Any]) -> Feature:
    return Feature(
        feature_id=str(payload.get("id", "")),
        type_name=type_name,
        attributes=dict(payload.get("attributes", {})),
        visibility=payload.get("visibility"),
        user_data=dict(payload.get("user_data", {})),
        default_geometry=payload.get("default_geometry"),
    )
