"""Feature lookup filters.

Filters select stored features either by feature identifier or by
equality on one attribute. Their text form is used in log events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from core.types import Feature


class QueryFilter(ABC):
    """Predicate over stored features."""

    @abstractmethod
    def matches(self, feature: Feature) -> bool:
        """Return whether ``feature`` satisfies the filter."""

    @abstractmethod
    def to_text(self) -> str:
        """Return a CQL-like rendering of the filter."""


@dataclass(frozen=True)
class FidFilter(QueryFilter):
    """Match features by identifier."""

    feature_id: str

    def matches(self, feature: Feature) -> bool:
        return feature.feature_id == self.feature_id

    def to_text(self) -> str:
        return f"IN ('{self.feature_id}')"


@dataclass(frozen=True)
class AttributeFilter(QueryFilter):
    """Match features whose attribute equals a literal value."""

    name: str
    value: object

    def matches(self, feature: Feature) -> bool:
        return _normalize(feature.attributes.get(self.name)) == _normalize(self.value)

    def to_text(self) -> str:
        if self.value is None:
            return f"{self.name} IS NULL"
        if isinstance(self.value, (int, float)) and not isinstance(self.value, bool):
            return f"{self.name} = {self.value}"
        return f"{self.name} = '{self.value}'"


def build_feature_filter(feature: Feature, unique_attribute: str | None) -> QueryFilter:
    """Build the lookup filter identifying ``feature`` in the store.

    Args:
        feature: Incoming feature.
        unique_attribute: Attribute that uniquely identifies a feature, or
            ``None`` to match on the feature identifier.

    Returns:
        Attribute-equality filter or identifier filter.
    """
    if unique_attribute is None:
        return FidFilter(feature.feature_id)
    return AttributeFilter(unique_attribute, feature.attributes.get(unique_attribute))


def _normalize(value: object) -> object:
    # file-backed stores round-trip non-JSON values as strings
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)
