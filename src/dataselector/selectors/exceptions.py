"""Exception hierarchy for selector operations.

Every error raised by this package derives from SelectorError, so callers
can catch one type around ``await selector.get()``. Errors coming from
SQLAlchemy while executing a statement are wrapped in SelectorQueryError
with the original exception chained.
"""


class SelectorError(Exception):
    """Base exception for all selector operations.

    Example:
        try:
            rows = await CustomerSelector(session).where("active", True).get()
        except SelectorError as e:
            logger.error("Selector failed", error=str(e))
    """
    pass


class SelectorQueryError(SelectorError):
    """Raised when the database rejects or fails a generated statement."""
    pass


class SelectorAlreadyExecutedError(SelectorError):
    """Raised when ``get()`` is called a second time on the same selector.

    A selector materializes its rows once; build a new selector to fetch
    again.
    """
    pass


class SoftDeleteNotSupportedError(SelectorError):
    """Raised when a trashed toggle is used on a model without a deleted_at column."""
    pass


class RelationNotFoundError(SelectorError):
    """Raised when eager loading names a relationship the model does not define."""
    pass


class InvalidConditionError(SelectorError):
    """Raised for filter arguments that do not form an equality or comparison."""
    pass


class FormatterNotFoundError(SelectorError):
    """Raised at apply time when a named formatter is missing from the registry.

    Example:
        selector.format("price", "money")   # no "money" formatter registered
        await selector.get()                # raises FormatterNotFoundError
    """
    pass


class MissingFieldError(SelectorError):
    """Raised when a formatter targets a field absent from the fetched rows."""
    pass
