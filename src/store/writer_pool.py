"""Feature writer pools.

This module manages write-channel lifecycle for the ingest coordinator.
Three variants share one capability set (borrow, return, invalidate,
close): ephemeral writers opened per borrow, pooled writers reused
between records with idle eviction, and upsert writers that wrap
another pool. Pools are safe for concurrent use.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from contextlib import contextmanager
from dataclasses import replace
import threading
import time
from typing import Callable, Iterator

from core.constants import (
    DEFAULT_MAX_IDLE_WRITERS,
    EVICTION_INTERVAL_DIVISOR,
    MIN_EVICTION_INTERVAL_SECONDS,
)
from core.errors import StoreError, WriterPoolClosedError
from core.logging_config import get_logger
from core.types import Feature, IngestOptions, WriteMode
from store.catalog import AppendChannel, FeatureCatalog
from store.filters import build_feature_filter

_LOGGER = get_logger(__name__)

DEFAULT_CLOSE_TIMEOUT_SECONDS = 30.0


class WriterHandle(ABC):
    """Exclusively-owned write channel bound to one type name."""

    type_name: str

    @abstractmethod
    def write(self, feature: Feature) -> None:
        """Write one feature through the handle."""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying channel."""


class AppendHandle(WriterHandle):
    """Handle that always inserts features through an append channel."""

    def __init__(self, type_name: str, channel: AppendChannel) -> None:
        self.type_name = type_name
        self._channel = channel

    def write(self, feature: Feature) -> None:
        self._channel.write(feature)

    def close(self) -> None:
        self._channel.close()


class UpsertHandle(WriterHandle):
    """Handle that updates a matching stored feature or appends a new one.

    The lookup filter uses the configured unique attribute when set,
    else the feature identifier.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        type_name: str,
        unique_attribute: str | None,
        append: WriterHandle,
    ) -> None:
        self.type_name = type_name
        self.append = append
        self._catalog = catalog
        self._unique_attribute = unique_attribute

    def write(self, feature: Feature) -> None:
        query_filter = build_feature_filter(feature, self._unique_attribute)
        with self._catalog.open_modify_writer(self.type_name, query_filter) as channel:
            matches = iter(channel)
            current = next(matches, None)
            if current is not None:
                channel.replace(current, _replacement_for(current, feature))
                if next(matches, None) is not None:
                    _LOGGER.warning(
                        "upsert_filter_matched_multiple",
                        type_name=self.type_name,
                        filter=query_filter.to_text(),
                    )
                return
        self.append.write(feature)

    def close(self) -> None:
        # the wrapped append handle belongs to its pool
        return None


class WriterPool(ABC):
    """Capability set shared by every writer pool variant."""

    @abstractmethod
    def borrow(self, type_name: str) -> WriterHandle:
        """Borrow a handle for ``type_name``; it must be returned exactly once."""

    @abstractmethod
    def return_writer(self, handle: WriterHandle) -> None:
        """Return a borrowed handle to the pool."""

    @abstractmethod
    def invalidate(self, type_name: str) -> None:
        """Drop cached handles bound to a stale layout of ``type_name``."""

    @abstractmethod
    def close(self) -> None:
        """Close all handles and dispose the catalog connection."""

    @contextmanager
    def writer(self, type_name: str) -> Iterator[WriterHandle]:
        """Borrow a handle for the duration of a ``with`` block.

        The handle is returned on every exit path, including errors
        raised while writing.
        """
        handle = self.borrow(type_name)
        try:
            yield handle
        finally:
            self.return_writer(handle)


class EphemeralWriters(WriterPool):
    """Each borrow opens a new append channel, closed again on return."""

    def __init__(self, catalog: FeatureCatalog) -> None:
        self._catalog = catalog
        self._closed = False

    def borrow(self, type_name: str) -> WriterHandle:
        if self._closed:
            raise WriterPoolClosedError("Writer pool is closed; restart the pipeline to write.")
        return AppendHandle(type_name, self._catalog.open_append_writer(type_name))

    def return_writer(self, handle: WriterHandle) -> None:
        _close_with_logging(handle)

    def invalidate(self, type_name: str) -> None:
        return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._catalog.dispose()


class _PoolEntry:
    """Idle handles of one type name, most recently returned last."""

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        self.idle: deque[tuple[WriterHandle, float]] = deque()
        self.retired = False


class PooledWriters(WriterPool):
    """Append handles cached per type name and reused between records.

    A background sweep closes handles idle for longer than ``idle_timeout``.
    Handles borrowed when their entry is invalidated or the pool closes are
    destroyed on return instead of going back to the idle set.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        idle_timeout: float,
        max_idle: int = DEFAULT_MAX_IDLE_WRITERS,
        clock: Callable[[], float] = time.monotonic,
        start_sweeper: bool = True,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the pool.

        Args:
            catalog: Catalog used to open append channels.
            idle_timeout: Seconds a handle may stay idle before eviction.
            max_idle: Idle handles kept per type name; extras are closed.
            clock: Monotonic time source.
            start_sweeper: Whether to run the background eviction thread.
            close_timeout: Seconds :meth:`close` waits for borrowed handles.
        """
        self._catalog = catalog
        self._idle_timeout = idle_timeout
        self._max_idle = max_idle
        self._clock = clock
        self._close_timeout = close_timeout
        self._condition = threading.Condition(threading.Lock())
        self._entries: dict[str, _PoolEntry] = {}
        self._borrowed: dict[int, tuple[WriterHandle, _PoolEntry]] = {}
        self._closed = False
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None
        if start_sweeper:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                name="geoingest-writer-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    @property
    def sweep_interval(self) -> float:
        """Return seconds between background eviction runs."""
        return max(MIN_EVICTION_INTERVAL_SECONDS, self._idle_timeout / EVICTION_INTERVAL_DIVISOR)

    def idle_count(self, type_name: str) -> int:
        """Return the number of idle handles cached for ``type_name``."""
        with self._condition:
            entry = self._entries.get(type_name)
            return len(entry.idle) if entry is not None else 0

    @property
    def borrowed_count(self) -> int:
        """Return the number of handles currently borrowed."""
        with self._condition:
            return len(self._borrowed)

    def borrow(self, type_name: str) -> WriterHandle:
        with self._condition:
            if self._closed:
                raise WriterPoolClosedError(
                    "Writer pool is closed; restart the pipeline to write."
                )
            entry = self._entries.get(type_name)
            if entry is None:
                entry = _PoolEntry(type_name)
                self._entries[type_name] = entry
            if entry.idle:
                handle, _ = entry.idle.pop()
                self._borrowed[id(handle)] = (handle, entry)
                return handle
        handle = AppendHandle(type_name, self._catalog.open_append_writer(type_name))
        with self._condition:
            self._borrowed[id(handle)] = (handle, entry)
        _LOGGER.debug("pooled_writer_created", type_name=type_name)
        return handle

    def return_writer(self, handle: WriterHandle) -> None:
        with self._condition:
            registration = self._borrowed.pop(id(handle), None)
            if registration is None or registration[0] is not handle:
                raise StoreError(
                    f"Writer for {handle.type_name} was not borrowed from this pool "
                    "or was already returned."
                )
            entry = registration[1]
            recycle = not self._closed and not entry.retired and len(entry.idle) < self._max_idle
            if recycle:
                entry.idle.append((handle, self._clock()))
            self._condition.notify_all()
        if not recycle:
            _close_with_logging(handle)

    def invalidate(self, type_name: str) -> None:
        with self._condition:
            entry = self._entries.pop(type_name, None)
            if entry is None:
                return
            entry.retired = True
            drained = [handle for handle, _ in entry.idle]
            entry.idle.clear()
        for handle in drained:
            _close_with_logging(handle)
        _LOGGER.info("writers_invalidated", type_name=type_name, closed_count=len(drained))

    def evict_idle(self) -> int:
        """Close handles idle for longer than the timeout.

        Returns:
            Number of handles closed.
        """
        now = self._clock()
        expired: list[WriterHandle] = []
        with self._condition:
            for entry in self._entries.values():
                while entry.idle and now - entry.idle[0][1] > self._idle_timeout:
                    expired.append(entry.idle.popleft()[0])
        for handle in expired:
            _close_with_logging(handle)
        if expired:
            _LOGGER.debug("idle_writers_evicted", closed_count=len(expired))
        return len(expired)

    def close(self) -> None:
        with self._condition:
            if self._closed:
                return
            self._closed = True
            self._stop.set()
            if not self._condition.wait_for(lambda: not self._borrowed, self._close_timeout):
                _LOGGER.warning(
                    "writer_pool_closed_with_borrowed_writers",
                    borrowed_count=len(self._borrowed),
                )
            drained = [handle for entry in self._entries.values() for handle, _ in entry.idle]
            self._entries.clear()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join()
        for handle in drained:
            _close_with_logging(handle)
        self._catalog.dispose()

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.evict_idle()
            except Exception as error:
                _LOGGER.error("idle_writer_sweep_failed", error=str(error))


class UpsertWriters(WriterPool):
    """Upsert handles composed over another pool's append handles."""

    def __init__(
        self,
        catalog: FeatureCatalog,
        unique_attribute: str | None,
        appender: WriterPool,
    ) -> None:
        self._catalog = catalog
        self._unique_attribute = unique_attribute
        self._appender = appender

    def borrow(self, type_name: str) -> WriterHandle:
        append = self._appender.borrow(type_name)
        return UpsertHandle(self._catalog, type_name, self._unique_attribute, append)

    def return_writer(self, handle: WriterHandle) -> None:
        if not isinstance(handle, UpsertHandle):
            raise StoreError(f"Writer for {handle.type_name} was not borrowed from this pool.")
        self._appender.return_writer(handle.append)

    def invalidate(self, type_name: str) -> None:
        self._appender.invalidate(type_name)

    def close(self) -> None:
        # also disposes of the catalog
        self._appender.close()


def build_writer_pool(catalog: FeatureCatalog, options: IngestOptions) -> WriterPool:
    """Build the writer pool variant selected by ingest options.

    Args:
        catalog: Catalog connection owned by the pipeline.
        options: Ingest options.

    Returns:
        Ephemeral or pooled append writers, wrapped for upserts in modify mode.
    """
    appender: WriterPool
    if options.writer_caching_enabled:
        appender = PooledWriters(
            catalog,
            idle_timeout=options.writer_cache_idle_timeout,
            max_idle=options.max_idle_writers,
        )
    else:
        appender = EphemeralWriters(catalog)
    if options.write_mode == WriteMode.MODIFY:
        return UpsertWriters(catalog, options.unique_identifier_column, appender)
    return appender


def _replacement_for(current: Feature, incoming: Feature) -> Feature:
    user_data = {**current.user_data, **incoming.user_data}
    visibility = incoming.visibility if incoming.visibility is not None else current.visibility
    return replace(
        incoming,
        user_data=user_data,
        visibility=visibility,
        default_geometry=incoming.default_geometry or current.default_geometry,
    )


def _close_with_logging(handle: WriterHandle) -> None:
    try:
        handle.close()
    except Exception as error:
        _LOGGER.warning("writer_close_failed", type_name=handle.type_name, error=str(error))
