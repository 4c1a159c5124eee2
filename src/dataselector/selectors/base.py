"""Fluent, reusable selectors over SQLAlchemy models.

A Selector wraps one SQLAlchemy ``select()`` for one model and exposes a
chainable vocabulary for the filtering, ordering, eager loading and output
formatting an application repeats across its code base. Entity-specific
selectors are subclasses that pin the model and its default columns.

Key Concepts:
- BUILDER PATTERN: every chainable method returns the same selector
- DICT ROWS: fetched rows are plain dicts so relations and formatted
  values can be attached next to the selected columns
- SOFT DELETE: rows with a deleted_at timestamp are hidden unless
  include_trashed()/only_trashed() is called
- TWO PASSES AFTER FETCH: eager loading first, formatters second, so
  formatter paths like "orders.date" see the loaded relation rows
- CANCELLATION: a canceled selector returns [] from get() without
  touching the database

Usage Example:
    class CustomerSelector(Selector):
        model = Customer
        default_columns = ["id", "name", "email"]

    rows = await (
        CustomerSelector(session)
        .where("active", True)
        .where("age", ">=", 18)
        .latest_first()
        .with_("orders", ["id", "date"])
        .format("orders.date", lambda d: d.strftime("%d/%m/%Y"))
        .get()
    )
"""

import functools
import re
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from sqlalchemy import Select, func, inspect as sa_inspect, literal_column, select
from sqlalchemy.exc import NoInspectionAvailable, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapper
from sqlalchemy.sql.expression import ClauseElement

from dataselector.core.config import Settings, settings as default_settings
from dataselector.core.logging import get_logger
from dataselector.core.tracing import trace_query
from dataselector.models.base import soft_delete_column
from dataselector.selectors.conditions import (
    Comparison,
    Equality,
    Raw,
    condition_from_args,
    resolve_column,
)
from dataselector.selectors.eager_loading import EagerLoading, RelationFilter
from dataselector.selectors.exceptions import (
    SelectorAlreadyExecutedError,
    SelectorError,
    SelectorQueryError,
    SoftDeleteNotSupportedError,
)
from dataselector.selectors.formatters import FormatterRef, Formatters
from dataselector.selectors.pagination import Page, PaginationParams
from dataselector.selectors.registry import SelectorRegistry, default_registry

logger = get_logger(__name__)

Row = dict[str, Any]
Result = Union[list[Row], Page]

# Soft-delete scopes
WITHOUT_TRASHED = "without"
WITH_TRASHED = "with"
ONLY_TRASHED = "only"

_ALIAS_RE = re.compile(r"^(?P<expr>.+?)\s+as\s+(?P<alias>\w+)$", re.IGNORECASE | re.DOTALL)


class Selector:
    """Reusable query facade for one SQLAlchemy model.

    Subclasses normally set ``model`` and ``default_columns``; both can also
    be passed to the constructor.

    Args:
        session: AsyncSession used to run the statements. The selector
            never commits, rolls back or closes it.
        model: Mapped model class (default: the class attribute)
        columns: Columns to select; wins over default_columns
        default_columns: Columns used when ``columns`` is not given
        include_trashed: Include soft-deleted rows from the start
        registry: Formatter/extension registry (default: default_registry)
        settings: Settings for column names and pagination limits

    Raises:
        SelectorError: If no mapped model is available
        SoftDeleteNotSupportedError: If include_trashed is True for a model
            without a deleted_at column
    """

    model: Optional[type[Any]] = None
    default_columns: Optional[Sequence[str]] = None
    created_at_column: Optional[str] = None
    updated_at_column: Optional[str] = None

    def __init__(
        self,
        session: AsyncSession,
        model: Optional[type[Any]] = None,
        columns: Optional[Sequence[str]] = None,
        default_columns: Optional[Sequence[str]] = None,
        include_trashed: bool = False,
        registry: Optional[SelectorRegistry] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.model = model or type(self).model
        self.registry = registry or default_registry
        self.settings = settings or default_settings

        if self.model is None:
            raise SelectorError(f"{type(self).__name__} has no model to select from")
        try:
            mapper = sa_inspect(self.model)
        except NoInspectionAvailable:
            mapper = None
        if not isinstance(mapper, Mapper):
            raise SelectorError(f"{self.model!r} is not a mapped model")

        self._table = mapper.local_table
        self._logger = get_logger(f"{__name__}.{self.model.__name__}Selector")

        if self.created_at_column is None:
            self.created_at_column = self.settings.created_at_column
        if self.updated_at_column is None:
            self.updated_at_column = self.settings.updated_at_column

        self.canceled = False
        self.pagination: Optional[PaginationParams] = None
        self.data: Optional[Result] = None
        self._eager_loading: Optional[EagerLoading] = None
        self._formatters: Optional[Formatters] = None
        self._trashed = WITHOUT_TRASHED
        self._executed = False

        initial = list(columns or default_columns or type(self).default_columns or ["*"])
        self._wildcard = initial == ["*"]
        self._query: Select[Any] = select(*self._columns(initial)).select_from(self._table)

        if include_trashed is True:
            self.include_trashed()

    def __getattr__(self, name: str) -> Callable[..., Any]:
        # Only reached for names that are not regular attributes
        registry = self.__dict__.get("registry")
        extension = registry.get_extension(name) if registry and not name.startswith("_") else None
        if extension is None:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

        @functools.wraps(extension)
        def bound(*args: Any, **kwargs: Any) -> Any:
            result = extension(self, *args, **kwargs)
            return self if result is None else result

        return bound

    # ========================================================================
    # HELPERS
    # ========================================================================

    def eager_loading(self) -> EagerLoading:
        """Eager-loading helper of this selector, created on first use."""
        if self._eager_loading is None:
            self._eager_loading = EagerLoading(self)
        return self._eager_loading

    def formatters(self) -> Formatters:
        """Formatters helper of this selector, created on first use."""
        if self._formatters is None:
            self._formatters = Formatters(self)
        return self._formatters

    def get_query(self) -> Select[Any]:
        """The statement ``get()`` would run, soft-delete scope included."""
        stmt = self._query
        deleted_at = soft_delete_column(self._table, self.settings.deleted_at_column)
        if deleted_at is not None:
            if self._trashed == WITHOUT_TRASHED:
                stmt = stmt.where(deleted_at.is_(None))
            elif self._trashed == ONLY_TRASHED:
                stmt = stmt.where(deleted_at.is_not(None))
        return stmt

    def _columns(self, columns: Iterable[str]) -> list[Any]:
        resolved: list[Any] = []
        for name in columns:
            if name == "*":
                resolved.extend(self._table.c)
            else:
                resolved.append(resolve_column(self._table, name))
        return resolved

    def _raw_columns(self, expression: str) -> list[Any]:
        resolved: list[Any] = []
        for part in _split_columns(expression):
            match = _ALIAS_RE.match(part)
            if match:
                resolved.append(literal_column(match["expr"].strip()).label(match["alias"]))
            elif part in self._table.c:
                resolved.append(self._table.c[part])
            else:
                resolved.append(literal_column(part))
        return resolved

    # ========================================================================
    # COLUMN SELECTION
    # ========================================================================

    def select(self, columns: Union[Sequence[str], str], overwrite: bool = False) -> "Selector":
        """Add columns to the selection, or replace it with ``overwrite=True``.

        A list names columns; a string is a raw column list:

            selector.select(["id", "name"])
            selector.select("id, LEFT(description, 100) AS excerpt")

        The implicit "all columns" selection of a selector built without
        columns is replaced by the first select() call. Later calls, ``["*"]``
        included, only add to it.
        """
        if isinstance(columns, str):
            new_columns = self._raw_columns(columns)
        else:
            new_columns = self._columns(columns)

        if overwrite or self._wildcard:
            self._query = self._query.with_only_columns(*new_columns)
        else:
            existing = list(self._query.selected_columns)
            new_columns = [c for c in new_columns if not any(c is e for e in existing)]
            if new_columns:
                self._query = self._query.add_columns(*new_columns)

        self._wildcard = False
        self._logger.debug("Columns selected", columns=columns, overwrite=overwrite)
        return self

    # ========================================================================
    # SOFT DELETE
    # ========================================================================

    def _require_soft_delete(self) -> None:
        if soft_delete_column(self._table, self.settings.deleted_at_column) is None:
            raise SoftDeleteNotSupportedError(
                f"{self.model.__name__} has no {self.settings.deleted_at_column} column"
            )

    def include_trashed(self) -> "Selector":
        """Include soft-deleted rows."""
        self._require_soft_delete()
        self._trashed = WITH_TRASHED
        return self

    def only_trashed(self) -> "Selector":
        """Select soft-deleted rows only."""
        self._require_soft_delete()
        self._trashed = ONLY_TRASHED
        return self

    # ========================================================================
    # FILTERING AND ORDERING
    # ========================================================================

    def where(self, *args: Any) -> "Selector":
        """Filter rows.

            selector.where("active", True)         # active = 1
            selector.where("age", ">", 30)         # age > 30
            selector.where(Comparison("name", "like", "A%"))
            selector.where(Customer.age.between(18, 30))

        Raises:
            InvalidConditionError: For malformed arguments or operators
        """
        if len(args) == 1 and isinstance(args[0], (Equality, Comparison, Raw)):
            clause = args[0].to_clause(self._table)
        elif len(args) == 1 and isinstance(args[0], ClauseElement):
            clause = args[0]
        else:
            clause = condition_from_args(*args).to_clause(self._table)

        self._query = self._query.where(clause)
        return self

    def where_raw(self, sql: str) -> "Selector":
        """Filter rows with a raw SQL condition."""
        return self.where(Raw(sql))

    def where_in(self, column: str, values: Iterable[Any]) -> "Selector":
        self._query = self._query.where(resolve_column(self._table, column).in_(list(values)))
        return self

    def of_ids(self, values: Iterable[Any]) -> "Selector":
        """WHERE id IN (values)"""
        return self.where_in("id", values)

    def order_by(self, column: str, ascending: bool = True) -> "Selector":
        col = resolve_column(self._table, column)
        self._query = self._query.order_by(col.asc() if ascending else col.desc())
        return self

    def latest_first(self) -> "Selector":
        return self.order_by(self.created_at_column, False)

    def oldest_first(self) -> "Selector":
        return self.order_by(self.created_at_column)

    def last_modified_first(self) -> "Selector":
        """Data ordering: last modified first"""
        return self.order_by(self.updated_at_column, False)

    def last_modified_last(self) -> "Selector":
        return self.order_by(self.updated_at_column)

    # ========================================================================
    # EXECUTION OPTIONS
    # ========================================================================

    def cancel(self) -> "Selector":
        """Cancel the whole query: ``get()`` will return an empty list."""
        self.canceled = True
        self._logger.debug("Selector canceled")
        return self

    def paginate(
        self,
        page_size: int,
        extra_query_params: Optional[dict[str, str]] = None,
        page: int = 1,
    ) -> "Selector":
        """Make ``get()`` return one Page of ``page_size`` rows.

        ``extra_query_params`` are appended to the page links of the result.

        Raises:
            ValueError: If page_size or page is out of range
        """
        self.pagination = PaginationParams(page_size, extra_query_params, page, settings=self.settings)
        return self

    def with_(
        self,
        relation: str,
        columns: Optional[Sequence[str]] = None,
        filter: Optional[RelationFilter] = None,
        include_trashed: bool = False,
    ) -> "Selector":
        """Load ``relation`` after the main fetch (see EagerLoading.add)."""
        self.eager_loading().add(relation, columns, filter, include_trashed)
        return self

    def format(
        self,
        column: Union[str, Sequence[tuple[str, FormatterRef]]],
        formatter: Optional[FormatterRef] = None,
    ) -> "Selector":
        """Set data formatters.

            selector.format("name", str.title)
            selector.format([("price", "money"), ("orders.date", "date")])
        """
        if isinstance(column, str):
            if formatter is None:
                raise ValueError(f"No formatter given for {column!r}")
            self.formatters().add(column, formatter)
        else:
            for path, ref in column:
                self.formatters().add(path, ref)
        return self

    # ========================================================================
    # TERMINAL OPERATIONS
    # ========================================================================

    @trace_query("selector.get")
    async def get(self) -> Result:
        """Run the query and return the shaped rows.

        Returns:
            [] if the selector was canceled, a Page if paginate() was
            called, otherwise a list of row dicts

        Raises:
            SelectorAlreadyExecutedError: If get() already ran
            SelectorQueryError: For database errors
            FormatterNotFoundError: If a named formatter is not registered
        """
        if self.canceled:
            return []
        if self._executed:
            raise SelectorAlreadyExecutedError(
                f"{type(self).__name__} was already executed; build a new selector"
            )
        self._executed = True

        stmt = self.get_query()
        try:
            if self.pagination is not None:
                self.data = await self._fetch_page(stmt, self.pagination)
            else:
                result = await self.session.execute(stmt)
                self.data = [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            self._logger.error("Failed to fetch rows", error=str(e))
            raise SelectorQueryError(f"Failed to fetch {self.model.__name__} rows: {e}") from e

        self._logger.debug(
            "Fetched rows",
            count=len(self.data),
            paginated=self.pagination is not None,
        )

        if self._eager_loading is not None:
            await self._eager_loading.load()

        if self._formatters is not None:
            self._formatters.apply()

        return self.data

    async def _fetch_page(self, stmt: Select[Any], pagination: PaginationParams) -> Page:
        total_result = await self.session.execute(_count_statement(stmt))
        total = total_result.scalar() or 0

        result = await self.session.execute(
            stmt.limit(pagination.page_size).offset(pagination.offset)
        )
        return Page(
            items=[dict(row._mapping) for row in result],
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            path=self.settings.pagination_path,
            page_query_param=self.settings.page_query_param,
            query_params=pagination.extra_query_params,
        )

    @trace_query("selector.count")
    async def get_count(self) -> int:
        """Count the matching rows.

        Runs even on a canceled selector; cancellation only affects get().
        """
        try:
            result = await self.session.execute(_count_statement(self.get_query()))
        except SQLAlchemyError as e:
            self._logger.error("Failed to count rows", error=str(e))
            raise SelectorQueryError(f"Failed to count {self.model.__name__} rows: {e}") from e
        return result.scalar() or 0

    async def is_empty(self) -> bool:
        return await self.get_count() == 0

    async def is_not_empty(self) -> bool:
        return await self.get_count() > 0

    def get_sql(self, literal_binds: bool = False) -> str:
        """Returns the SQL code for the query, in the session's dialect when bound."""
        bind = getattr(self.session, "bind", None)
        compiled = self.get_query().compile(
            dialect=getattr(bind, "dialect", None),
            compile_kwargs={"literal_binds": literal_binds},
        )
        return str(compiled)


def _count_statement(stmt: Select[Any]) -> Select[Any]:
    return select(func.count()).select_from(stmt.order_by(None).subquery())


def _split_columns(expression: str) -> list[str]:
    """Split a raw column list on commas outside parentheses and quotes."""
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    quote: Optional[str] = None
    for char in expression:
        if quote:
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]
