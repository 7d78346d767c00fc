"""Raw record sources for ingestion.

This module defines the record source contract consumed by the
coordinator, a JSONL file source, an iterable source for hosts that
already hold records, and the bounded batch read loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
from pathlib import Path
from typing import IO, Any, Callable, Iterable, Iterator, Mapping

from core.errors import RecordReadError
from core.logging_config import get_logger

RawRecord = Mapping[str, Any]

_LOGGER = get_logger(__name__)


class RecordSource(ABC):
    """Bounded stream of raw records."""

    @abstractmethod
    def read_next(self) -> RawRecord | None:
        """Return the next raw record, or ``None`` once exhausted.

        Raises:
            RecordReadError: If the next record cannot be read. The source
                stays usable and the following call reads the next record.
        """


class IterableRecordSource(RecordSource):
    """Record source over an in-memory iterable of mappings."""

    def __init__(self, records: Iterable[RawRecord]) -> None:
        self._records = iter(records)

    def read_next(self) -> RawRecord | None:
        return next(self._records, None)


class JsonlRecordSource(RecordSource):
    """Record source reading one JSON object per line from a local file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._stream: IO[bytes] | None = None
        self._line_number = 0
        self._open_failed = False

    def __enter__(self) -> "JsonlRecordSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def read_next(self) -> RawRecord | None:
        if self._open_failed:
            return None
        stream = self._open()
        while True:
            line = stream.readline()
            if not line:
                return None
            self._line_number += 1
            if line.strip():
                return _parse_record_line(self._path, line, self._line_number)

    def close(self) -> None:
        """Close the underlying file."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def _open(self) -> IO[bytes]:
        """Open the file on first read; an open failure exhausts the source."""
        if self._stream is None:
            try:
                self._stream = self._path.open("rb")
            except OSError as error:
                self._open_failed = True
                raise RecordReadError(
                    f"Failed to open record source at {self._path}: {error}. "
                    "Provide an existing readable JSONL file."
                ) from error
        return self._stream


def read_batch(
    source: RecordSource,
    batch_size: int,
    max_read_failures: int,
    on_read_failure: Callable[[RecordReadError], None],
) -> Iterator[RawRecord]:
    """Yield up to ``batch_size`` records, skipping unreadable ones.

    Each read failure is reported to ``on_read_failure`` and reading
    continues. After ``max_read_failures`` consecutive failures the batch
    ends early so a persistently broken source cannot loop forever.

    Args:
        source: Record source.
        batch_size: Maximum number of records to yield.
        max_read_failures: Consecutive read failures tolerated.
        on_read_failure: Callback receiving each read error.

    Yields:
        Successfully read raw records.
    """
    records_read = 0
    consecutive_failures = 0
    while records_read < batch_size:
        try:
            raw = source.read_next()
        except RecordReadError as error:
            on_read_failure(error)
            consecutive_failures += 1
            if consecutive_failures >= max_read_failures:
                _LOGGER.error(
                    "read_failure_limit_reached",
                    consecutive_failures=consecutive_failures,
                    records_read=records_read,
                )
                return
            continue
        if raw is None:
            return
        consecutive_failures = 0
        records_read += 1
        yield raw


def render_record(raw: object) -> str:
    """Render a raw record as ``key -> value`` text for diagnostics."""
    if isinstance(raw, Mapping):
        return ",".join(f"{key} -> {value}" for key, value in raw.items())
    return str(raw)


def _parse_record_line(path: Path, line: bytes, line_number: int) -> RawRecord:
    """Decode and parse one JSONL line into a raw record.

    Raises:
        RecordReadError: If the line is not UTF-8 or not a JSON object.
    """
    try:
        text = line.decode("utf-8")
    except UnicodeDecodeError as error:
        raise RecordReadError(
            f"Failed to decode record at {path}:{line_number}: {error.reason}. "
            "Re-encode the file as UTF-8."
        ) from error
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise RecordReadError(
            f"Failed to parse record at {path}:{line_number}: {error.msg}."
        ) from error
    if not isinstance(payload, dict):
        raise RecordReadError(
            f"Invalid record at {path}:{line_number}: expected a JSON object per line."
        )
    return payload
