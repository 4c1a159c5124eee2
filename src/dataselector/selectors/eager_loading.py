"""Second-pass loading of related rows.

After the primary rows are fetched, each registered relation is loaded
with a single ``IN`` query keyed on the parent rows and attached to them
under the relation's name:

    await CustomerSelector(session).with_("orders", ["id", "date"]).get()
    # [{"id": 1, "name": "Ann", "orders": [{"id": 10, "date": ...}, ...]}, ...]

Relations are the model's SQLAlchemy ``relationship()`` attributes. Their
``primaryjoin`` criteria and ``order_by`` apply. Only direct foreign-key
relationships are followed; relationships through an association table
are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union

from sqlalchemy import ColumnElement, inspect as sa_inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import RelationshipProperty
from sqlalchemy.sql import visitors
from sqlalchemy.sql.expression import ColumnClause

from dataselector.core.logging import get_logger
from dataselector.core.tracing import trace_query
from dataselector.models.base import soft_delete_column
from dataselector.selectors.conditions import condition_from_args, resolve_column
from dataselector.selectors.exceptions import (
    RelationNotFoundError,
    SelectorError,
    SelectorQueryError,
    SoftDeleteNotSupportedError,
)

if TYPE_CHECKING:
    from dataselector.selectors.base import Selector

logger = get_logger(__name__)

RelationFilter = Union[tuple[Any, ...], str]


@dataclass
class EagerLoad:
    """How one relation is loaded."""

    relation: str
    columns: Optional[list[str]] = None
    filter: Optional[RelationFilter] = None
    include_trashed: bool = False


class EagerLoading:
    """Relations to load after a selector's primary fetch, keyed by name."""

    def __init__(self, selector: Selector) -> None:
        self._selector = selector
        self.entries: dict[str, EagerLoad] = {}

    def add(
        self,
        relation: str,
        columns: Optional[Sequence[str]] = None,
        filter: Optional[RelationFilter] = None,
        include_trashed: bool = False,
    ) -> EagerLoading:
        """Register (or replace) the loading of ``relation``.

        Args:
            relation: Name of a relationship on the selector's model
            columns: Columns of the related table to fetch (default: all)
            filter: ``where``-style argument tuple, e.g. ``("status", "paid")``,
                or a raw SQL string
            include_trashed: Also load soft-deleted related rows
        """
        if filter is not None and not isinstance(filter, (tuple, str)):
            raise TypeError("Relation filter must be a tuple of where() arguments or a raw SQL string")

        self.entries[relation] = EagerLoad(
            relation=relation,
            columns=list(columns) if columns and list(columns) != ["*"] else None,
            filter=filter,
            include_trashed=include_trashed,
        )
        return self

    def __len__(self) -> int:
        return len(self.entries)

    @trace_query("selector.eager_load")
    async def load(self) -> None:
        """Load every registered relation into the selector's fetched rows."""
        if not self.entries:
            return

        rows = list(self._selector.data)
        for entry in self.entries.values():
            await self._load_relation(entry, rows)

    async def _load_relation(self, entry: EagerLoad, rows: list[dict[str, Any]]) -> None:
        prop = self._relationship(entry.relation)
        (local_col, remote_col), = prop.local_remote_pairs
        keys = {row.get(local_col.key) for row in rows} - {None}

        grouped: dict[Any, list[dict[str, Any]]] = {}
        if keys:
            related = await self._fetch(entry, prop, local_col, remote_col, keys)
            for related_row in related:
                grouped.setdefault(related_row[remote_col.key], []).append(related_row)

            if entry.columns is not None and remote_col.key not in entry.columns:
                for related_row in related:
                    related_row.pop(remote_col.key, None)

        for row in rows:
            matches = grouped.get(row.get(local_col.key), [])
            if prop.uselist:
                row[entry.relation] = list(matches)
            else:
                row[entry.relation] = dict(matches[0]) if matches else None

        logger.debug(
            "Eager-loaded relation",
            relation=entry.relation,
            parents=len(rows),
            keys=len(keys),
        )

    def _relationship(self, name: str) -> RelationshipProperty[Any]:
        mapper = sa_inspect(self._selector.model)
        prop = mapper.relationships.get(name)
        if prop is None:
            raise RelationNotFoundError(f"{mapper.class_.__name__} has no relationship {name!r}")
        if prop.secondary is not None:
            raise SelectorError(
                f"Relationship {name!r} goes through an association table and cannot be eager-loaded"
            )
        if len(prop.local_remote_pairs) != 1:
            raise SelectorError(f"Relationship {name!r} uses a composite key and cannot be eager-loaded")

        (local_col, _), = prop.local_remote_pairs
        parent = prop.parent.local_table
        if parent is not prop.target:
            stray = {
                element.key
                for element in visitors.iterate(prop.primaryjoin)
                if isinstance(element, ColumnClause) and element.table is parent
            } - {local_col.key}
            if stray:
                raise SelectorError(
                    f"Relationship {name!r} joins on parent columns {sorted(stray)} and cannot be eager-loaded"
                )
        return prop

    async def _fetch(
        self,
        entry: EagerLoad,
        prop: RelationshipProperty[Any],
        local_col: Any,
        remote_col: Any,
        keys: set[Any],
    ) -> list[dict[str, Any]]:
        target = prop.target
        if entry.columns is None:
            stmt = select(target)
        else:
            names = list(entry.columns)
            if remote_col.key not in names:
                names.append(remote_col.key)
            stmt = select(*[resolve_column(target, name) for name in names]).select_from(target)

        stmt = stmt.where(
            _join_criteria(prop, local_col, remote_col),
            remote_col.in_(sorted(keys, key=str)),
        )
        if prop.order_by:
            stmt = stmt.order_by(*prop.order_by)

        if isinstance(entry.filter, str):
            stmt = stmt.where(text(entry.filter))
        elif entry.filter is not None:
            stmt = stmt.where(condition_from_args(*entry.filter).to_clause(target))

        deleted_at = soft_delete_column(target, self._selector.settings.deleted_at_column)
        if entry.include_trashed:
            if deleted_at is None:
                raise SoftDeleteNotSupportedError(
                    f"Relation {entry.relation!r} has no {self._selector.settings.deleted_at_column} column"
                )
        elif deleted_at is not None:
            stmt = stmt.where(deleted_at.is_(None))

        try:
            result = await self._selector.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Failed to eager-load relation", relation=entry.relation, error=str(e))
            raise SelectorQueryError(f"Failed to load relation {entry.relation!r}: {e}") from e

        return [dict(row._mapping) for row in result]


def _join_criteria(
    prop: RelationshipProperty[Any], local_col: Any, remote_col: Any
) -> ColumnElement[bool]:
    """The relationship's join condition in terms of the related table alone.

    The parent key is replaced by the related key it equals, so extra
    criteria such as ``Order.status == "paid"`` filter the batch query.
    """
    parent = prop.parent.local_table

    def swap(element: Any) -> Any:
        if isinstance(element, ColumnClause) and element.table is parent and element.key == local_col.key:
            return remote_col
        return None

    return visitors.replacement_traverse(prop.primaryjoin, {}, swap)
