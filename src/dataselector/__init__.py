"""dataselector: reusable fluent selectors over SQLAlchemy models.

Applications call ``dataselector.core.logging.configure_logging()`` and
``dataselector.core.tracing.configure_tracing()`` once at startup to get
structured logs and exported query spans.
"""

from dataselector.selectors import (
    Page,
    Selector,
    SelectorError,
    SelectorRegistry,
    default_registry,
)

__version__ = "0.1.0"

__all__ = [
    "Page",
    "Selector",
    "SelectorError",
    "SelectorRegistry",
    "default_registry",
]
