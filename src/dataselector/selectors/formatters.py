"""Post-fetch field formatting.

A formatter turns one field value into a display value. Applying it
writes ``<field>_formatted`` next to the field and leaves the original
alone:

    {"name": "john"}  --format("name", lambda v: f"Mr. {v}")-->
    {"name": "john", "name_formatted": "Mr. john"}

Paths may reach one level into an eager-loaded relation ("orders.date"),
in which case every related row gets its own ``date_formatted``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Union

from dataselector.core.logging import get_logger
from dataselector.selectors.exceptions import MissingFieldError

if TYPE_CHECKING:
    from dataselector.selectors.base import Selector

logger = get_logger(__name__)

FormatterRef = Union[Callable[[Any], Any], str]

FORMATTED_SUFFIX = "_formatted"


class Formatters:
    """Formatter entries of one selector, keyed by field path."""

    def __init__(self, selector: Selector) -> None:
        self._selector = selector
        self.entries: dict[str, FormatterRef] = {}

    def add(self, column: str, formatter: FormatterRef) -> Formatters:
        """Format ``column`` with a callable or a registered formatter name.

        Named formatters are looked up when the formatters are applied, so
        they may be registered after this call.

        Raises:
            ValueError: If the path nests deeper than "relation.field"
            TypeError: If formatter is neither callable nor a name
        """
        segments = column.split(".")
        if len(segments) > 2 or not all(segments):
            raise ValueError(
                f"Formatter path {column!r} must be a field or a relation.field pair"
            )
        if not callable(formatter) and not isinstance(formatter, str):
            raise TypeError(f"Formatter for {column!r} must be callable or a registered name")

        self.entries[column] = formatter
        return self

    def __len__(self) -> int:
        return len(self.entries)

    def apply(self) -> None:
        """Write formatted values into the selector's fetched rows."""
        if not self.entries:
            return

        registry = self._selector.registry
        rows = self._selector.data

        for path, ref in self.entries.items():
            formatter = ref if callable(ref) else registry.get_formatter(ref)
            relation, _, field = path.rpartition(".")

            for row in rows:
                if not relation:
                    _format_field(row, field, formatter, path)
                    continue

                if relation not in row:
                    raise MissingFieldError(
                        f"Cannot format {path!r}: relation {relation!r} was not eager-loaded"
                    )
                related = row[relation]
                if related is None:
                    continue
                if isinstance(related, dict):
                    _format_field(related, field, formatter, path)
                else:
                    for sub_row in related:
                        _format_field(sub_row, field, formatter, path)

            logger.debug("Applied formatter", path=path, formatter=ref if isinstance(ref, str) else None)


def _format_field(row: dict[str, Any], field: str, formatter: Callable[[Any], Any], path: str) -> None:
    try:
        value = row[field]
    except KeyError:
        raise MissingFieldError(f"Cannot format {path!r}: field {field!r} was not selected") from None
    row[field + FORMATTED_SUFFIX] = formatter(value)
