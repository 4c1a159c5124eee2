"""Declarative base and mixins understood by the selectors."""

from dataselector.models.base import (
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    generate_repr,
    soft_delete_column,
)

__all__ = [
    "Base",
    "SoftDeleteMixin",
    "TimestampMixin",
    "generate_repr",
    "soft_delete_column",
]
