"""Feature catalog adapter contract.

A catalog is the storage engine's schema directory plus the write
and query channels the ingest pipeline needs. Implementations must be
safe to share between threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterator

from core.errors import FeatureWriteError
from core.types import Feature, FeatureSchema
from store.filters import QueryFilter


class AppendChannel(ABC):
    """Open write channel that inserts features for one type name."""

    @abstractmethod
    def write(self, feature: Feature) -> None:
        """Insert one feature.

        Raises:
            FeatureWriteError: If the feature does not fit the channel's layout.
            StoreError: If the channel is closed or the store fails.
        """

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release the channel."""


class ModifyChannel(ABC):
    """Channel over the features matching a filter, allowing in-place replacement.

    Iterating yields the matched features in store order. The channel holds the
    store's write lock until it is closed, so use it as a context manager.
    """

    def __enter__(self) -> "ModifyChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @abstractmethod
    def __iter__(self) -> Iterator[Feature]:
        """Iterate over matched features."""

    @abstractmethod
    def replace(self, current: Feature, replacement: Feature) -> None:
        """Overwrite a matched feature with ``replacement``.

        Raises:
            StoreError: If ``current`` was not yielded by this channel.
        """

    @abstractmethod
    def close(self) -> None:
        """Persist replacements and release the store lock."""


class FeatureCatalog(ABC):
    """Schema catalog and feature channels of a storage engine."""

    @abstractmethod
    def get_schema(self, type_name: str) -> FeatureSchema | None:
        """Return the stored schema for ``type_name`` or ``None``."""

    @abstractmethod
    def create_schema(self, schema: FeatureSchema) -> None:
        """Create a new schema.

        Raises:
            SchemaExistsError: If the type name is already defined.
        """

    @abstractmethod
    def update_schema(self, type_name: str, schema: FeatureSchema) -> None:
        """Replace the stored definition of ``type_name``.

        Raises:
            SchemaNotFoundError: If the type name is not defined.
        """

    @abstractmethod
    def type_names(self) -> list[str]:
        """Return defined type names in sorted order."""

    @abstractmethod
    def open_append_writer(self, type_name: str) -> AppendChannel:
        """Open an append channel bound to the current layout of ``type_name``.

        Raises:
            SchemaNotFoundError: If the type name is not defined.
        """

    @abstractmethod
    def query(self, type_name: str, query_filter: QueryFilter | None = None) -> Iterator[Feature]:
        """Iterate stored features of ``type_name`` matching ``query_filter``."""

    @abstractmethod
    def open_modify_writer(self, type_name: str, query_filter: QueryFilter) -> ModifyChannel:
        """Open a channel over matching features for in-place replacement."""

    @abstractmethod
    def dispose(self) -> None:
        """Release the catalog connection."""

    def update_feature(
        self,
        type_name: str,
        query_filter: QueryFilter,
        update: Callable[[Feature], Feature],
    ) -> int:
        """Replace every feature matching ``query_filter`` with ``update(feature)``.

        Args:
            type_name: Type name to update.
            query_filter: Filter selecting the features to update.
            update: Function building the replacement of one matched feature.

        Returns:
            Number of features updated.
        """
        updated = 0
        with self.open_modify_writer(type_name, query_filter) as channel:
            for current in channel:
                channel.replace(current, update(current))
                updated += 1
        return updated


def fit_feature(schema: FeatureSchema, feature: Feature) -> Feature:
    """Bind a feature to a channel's schema layout.

    Args:
        schema: Layout the channel was opened with.
        feature: Feature to write.

    Returns:
        Feature with exactly the schema's attributes, missing ones as ``None``.

    Raises:
        FeatureWriteError: If the feature carries attributes the layout lacks.
    """
    unknown = [name for name in feature.attributes if schema.descriptor(name) is None]
    if unknown:
        raise FeatureWriteError(
            f"Feature {feature.feature_id} has attributes {unknown} that are not part of "
            f"the writer layout for {schema.type_name}. Reconcile the schema and reopen "
            "the writer."
        )
    return feature.project(schema)
