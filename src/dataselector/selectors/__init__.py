"""Selector layer: fluent per-model queries with eager loading and formatters.

Selectors wrap SQLAlchemy statements behind a reusable, chainable API so
that the filtering and output shaping of an entity lives in one class.
"""

from dataselector.selectors.base import Selector
from dataselector.selectors.conditions import Comparison, Equality, Raw, condition_from_args
from dataselector.selectors.eager_loading import EagerLoad, EagerLoading
from dataselector.selectors.exceptions import (
    FormatterNotFoundError,
    InvalidConditionError,
    MissingFieldError,
    RelationNotFoundError,
    SelectorAlreadyExecutedError,
    SelectorError,
    SelectorQueryError,
    SoftDeleteNotSupportedError,
)
from dataselector.selectors.formatters import Formatters
from dataselector.selectors.pagination import Page, PaginationParams
from dataselector.selectors.registry import SelectorRegistry, default_registry

__all__ = [
    "Comparison",
    "EagerLoad",
    "EagerLoading",
    "Equality",
    "FormatterNotFoundError",
    "Formatters",
    "InvalidConditionError",
    "MissingFieldError",
    "Page",
    "PaginationParams",
    "Raw",
    "RelationNotFoundError",
    "Selector",
    "SelectorAlreadyExecutedError",
    "SelectorError",
    "SelectorQueryError",
    "SelectorRegistry",
    "SoftDeleteNotSupportedError",
    "condition_from_args",
    "default_registry",
]
