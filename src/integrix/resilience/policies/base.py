"""Shared lookup behaviour of the per-category policy registries."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Generic, TypeVar

from ..models.policies import AdapterCategory
from .adapter_types import classify_adapter_type

P = TypeVar("P")


class CategoryPolicyTable(Generic[P]):
    """Read-only table of one policy kind, keyed by adapter category."""

    def __init__(self, policies: Mapping[AdapterCategory, P]) -> None:
        """
        Initialize policy table.

        Args:
            policies: Policy per category, must include the default bucket

        Raises:
            ValueError: If the default bucket is missing
        """
        if AdapterCategory.DEFAULT not in policies:
            raise ValueError("policy table requires a default entry")
        self._policies: Mapping[AdapterCategory, P] = MappingProxyType(dict(policies))

    def resolve(self, adapter_type: str) -> P:
        """Policy for an adapter type tag, falling back to the default bucket."""
        return self.for_category(classify_adapter_type(adapter_type))

    def for_category(self, category: AdapterCategory) -> P:
        return self._policies.get(category, self._policies[AdapterCategory.DEFAULT])

    def categories(self) -> list[AdapterCategory]:
        return list(self._policies.keys())
