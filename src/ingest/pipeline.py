"""Ingest pipeline lifecycle.

This module owns the catalog connection, writer pool, reconciler and
coordinator of one running pipeline. ``start`` builds them in order
and releases whatever was opened if a later step fails; ``stop``
closes the writer pool, which disposes of the catalog.
"""

from __future__ import annotations

import time
from typing import Callable

from core.config import validate_ingest_options
from core.errors import GeoIngestError, StoreUnavailableError
from core.logging_config import get_logger
from core.types import BatchResult, BatchTransfer, IngestOptions, IngestOutcome
from ingest.coordinator import IngestCoordinator
from ingest.record_converter import RecordConverter
from ingest.record_source import RecordSource
from ingest.record_update import RecordUpdater
from ingest.schema_reconciler import SchemaReconciler
from store.catalog import FeatureCatalog
from store.writer_pool import WriterPool, build_writer_pool

_LOGGER = get_logger(__name__)

CatalogFactory = Callable[[], FeatureCatalog]


class IngestPipeline:
    """Owned resources of one ingest pipeline instance."""

    def __init__(
        self,
        options: IngestOptions,
        catalog_factory: CatalogFactory,
        converter: RecordConverter,
    ) -> None:
        self._options = options
        self._catalog_factory = catalog_factory
        self._converter = converter
        self._catalog: FeatureCatalog | None = None
        self._writers: WriterPool | None = None
        self._coordinator: IngestCoordinator | None = None
        self._updater: RecordUpdater | None = None

    def __enter__(self) -> "IngestPipeline":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def started(self) -> bool:
        """Return whether the pipeline is running."""
        return self._coordinator is not None

    def start(self) -> None:
        """Open the catalog and build the ingest components.

        Raises:
            GeoIngestConfigError: If the options are invalid.
            StoreUnavailableError: If the catalog cannot be opened.
        """
        if self.started:
            return
        validate_ingest_options(self._options)
        try:
            catalog = self._catalog_factory()
        except StoreUnavailableError:
            raise
        except Exception as error:
            raise StoreUnavailableError(
                f"Failed to open the feature catalog: {error}. "
                "Check the catalog parameters and that the store is reachable."
            ) from error
        writers: WriterPool | None = None
        try:
            writers = build_writer_pool(catalog, self._options)
            reconciler = SchemaReconciler(
                catalog, writers, self._options.schema_compatibility_mode
            )
            coordinator = IngestCoordinator(reconciler, writers, self._converter, self._options)
        except Exception:
            _release_partial(catalog, writers)
            raise
        self._catalog = catalog
        self._writers = writers
        self._coordinator = coordinator
        _LOGGER.info(
            "pipeline_started",
            catalog=type(catalog).__name__,
            write_mode=self._options.write_mode.value,
            schema_compatibility_mode=self._options.schema_compatibility_mode.value,
            writer_caching_enabled=self._options.writer_caching_enabled,
        )

    def process_batch(self, source: RecordSource) -> BatchResult:
        """Ingest one batch of records.

        Args:
            source: Host-supplied record source.

        Returns:
            Batch outcome and the host routing decision.

        Raises:
            GeoIngestError: If the pipeline has not been started.
        """
        outcome = self._require_coordinator().ingest_batch(source)
        return _batch_result(outcome)

    def process_update_batch(self, source: RecordSource) -> BatchResult:
        """Apply one batch of records as partial updates to stored features.

        Raises:
            GeoIngestError: If the pipeline has not been started.
            GeoIngestConfigError: If no unique identifier column is configured.
        """
        if self._catalog is None:
            raise GeoIngestError("Ingest pipeline is not started; call start() first.")
        if self._updater is None:
            self._updater = RecordUpdater(self._catalog, self._converter, self._options)
        return _batch_result(self._updater.update_batch(source))

    def stop(self) -> None:
        """Close the writer pool and dispose of the catalog."""
        if self._writers is None:
            return
        started = time.monotonic()
        writers = self._writers
        self._writers = None
        self._coordinator = None
        self._updater = None
        self._catalog = None
        writers.close()
        _LOGGER.info("pipeline_stopped", elapsed_ms=int((time.monotonic() - started) * 1000))

    def _require_coordinator(self) -> IngestCoordinator:
        if self._coordinator is None:
            raise GeoIngestError("Ingest pipeline is not started; call start() first.")
        return self._coordinator


def _batch_result(outcome: IngestOutcome) -> BatchResult:
    transfer = BatchTransfer.FAILURE if outcome.schema_errors else BatchTransfer.SUCCESS
    _LOGGER.debug(
        "batch_processed",
        success_count=outcome.success_count,
        failure_count=outcome.failure_count,
        transfer=transfer.value,
    )
    return BatchResult(outcome=outcome, transfer=transfer)


def _release_partial(catalog: FeatureCatalog, writers: WriterPool | None) -> None:
    """Release resources opened by a failed start."""
    try:
        if writers is not None:
            writers.close()
        else:
            catalog.dispose()
    except Exception as error:
        _LOGGER.warning("pipeline_cleanup_failed", error=str(error))
