"""Filter conditions applied by ``Selector.where`` and eager-loading filters.

Positional ``where`` arguments are turned into one of three tagged
variants before they reach SQLAlchemy:

    Equality("active", True)          where("active", True)
    Comparison("age", ">", 30)        where("age", ">", 30)
    Raw("age > 30 AND name LIKE 'a%'")  where_raw("...")

Column names are looked up on the selector's table. Names the table does
not know are rendered as bare columns and left for the database to
reject at execution time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union

from sqlalchemy import ColumnElement, column, literal_column, text
from sqlalchemy.sql.expression import FromClause

from dataselector.selectors.exceptions import InvalidConditionError

Operator = Callable[[Any, Any], ColumnElement[bool]]

OPERATORS: dict[str, Operator] = {
    "=": lambda col, value: col == value,
    "==": lambda col, value: col == value,
    "!=": lambda col, value: col != value,
    "<>": lambda col, value: col != value,
    "<": lambda col, value: col < value,
    "<=": lambda col, value: col <= value,
    ">": lambda col, value: col > value,
    ">=": lambda col, value: col >= value,
    "like": lambda col, value: col.like(value),
    "not like": lambda col, value: col.not_like(value),
    "ilike": lambda col, value: col.ilike(value),
    "in": lambda col, value: col.in_(list(value)),
    "not in": lambda col, value: col.not_in(list(value)),
    "is": lambda col, value: col.is_(value),
    "is not": lambda col, value: col.is_not(value),
}


def resolve_column(table: FromClause, name: str) -> Any:
    """Resolve a column name against ``table``.

    Qualified names ("orders.total") are passed through as literal SQL;
    unknown plain names become unbound ``column()`` objects.
    """
    found = table.c.get(name)
    if found is not None:
        return found
    if "." in name:
        return literal_column(name)
    return column(name)


@dataclass(frozen=True)
class Equality:
    """``column = value``"""

    column: str
    value: Any

    def to_clause(self, table: FromClause) -> ColumnElement[bool]:
        col = resolve_column(table, self.column)
        if self.value is None:
            return col.is_(None)
        return col == self.value


@dataclass(frozen=True)
class Comparison:
    """``column <operator> value``"""

    column: str
    operator: str
    value: Any

    def __post_init__(self) -> None:
        if self.operator.lower() not in OPERATORS:
            raise InvalidConditionError(
                f"Unsupported operator {self.operator!r} for column {self.column!r}"
            )

    def to_clause(self, table: FromClause) -> ColumnElement[bool]:
        col = resolve_column(table, self.column)
        return OPERATORS[self.operator.lower()](col, self.value)


@dataclass(frozen=True)
class Raw:
    """Raw SQL filter, passed through untouched."""

    sql: str

    def to_clause(self, table: FromClause) -> Any:
        return text(self.sql)


Condition = Union[Equality, Comparison, Raw]


def condition_from_args(*args: Any) -> Condition:
    """Build a condition from ``where``-style positional arguments.

    Raises:
        InvalidConditionError: For any argument count other than 2 or 3,
            or a non-string column name.
    """
    if len(args) == 2:
        column_name, value = args
        cond: Condition = Equality(column_name, value)
    elif len(args) == 3:
        column_name, operator, value = args
        if not isinstance(operator, str):
            raise InvalidConditionError(f"Operator must be a string, got {operator!r}")
        cond = Comparison(column_name, operator, value)
    else:
        raise InvalidConditionError(
            f"where() takes a column and a value, optionally with an operator; got {len(args)} arguments"
        )

    if not isinstance(column_name, str):
        raise InvalidConditionError(f"Column name must be a string, got {column_name!r}")
    return cond
