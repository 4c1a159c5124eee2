"""Named formatters and selector extensions.

A SelectorRegistry is plain configuration: build one at startup, register
formatters and extensions on it, and hand it to the selectors that should
see them. Selectors created without a registry use ``default_registry``.

Example:
    registry = SelectorRegistry()
    registry.set_formatter("upper", str.upper)
    registry.define_where("active", lambda selector: selector.where("active", True))

    rows = await (
        CustomerSelector(session, registry=registry)
        .where_active()
        .format("name", "upper")
        .get()
    )
"""

from typing import Any, Callable

from dataselector.core.logging import get_logger
from dataselector.selectors.exceptions import FormatterNotFoundError

logger = get_logger(__name__)

Formatter = Callable[[Any], Any]
Extension = Callable[..., Any]


class SelectorRegistry:
    """Mapping of names to formatters and to selector extension methods.

    Registering an existing name replaces the previous entry. Entries are
    never removed; registries are meant to be filled once and read by
    every selector afterwards.
    """

    def __init__(self) -> None:
        self._formatters: dict[str, Formatter] = {}
        self._extensions: dict[str, Extension] = {}

    # ========================================================================
    # FORMATTERS
    # ========================================================================

    def set_formatter(self, name: str, formatter: Formatter) -> None:
        """Register a formatter usable as ``selector.format(column, name)``."""
        if not callable(formatter):
            raise TypeError(f"Formatter {name!r} must be callable")
        if name in self._formatters:
            logger.debug("Replacing formatter", formatter=name)
        self._formatters[name] = formatter

    def get_formatter(self, name: str) -> Formatter:
        """Return the formatter registered under ``name``.

        Raises:
            FormatterNotFoundError: If nothing is registered under ``name``
        """
        try:
            return self._formatters[name]
        except KeyError:
            raise FormatterNotFoundError(f'Global formatter "{name}" not found') from None

    def has_formatter(self, name: str) -> bool:
        return name in self._formatters

    # ========================================================================
    # EXTENSIONS
    # ========================================================================

    def define(self, name: str, extension: Extension) -> None:
        """Register ``extension`` as a method named ``name`` on selectors.

        The extension is called with the selector as its first argument,
        followed by whatever the caller passed. Built-in selector methods
        always take precedence over an extension of the same name.
        """
        if not name or name.startswith("_"):
            raise ValueError(f"Invalid extension name {name!r}")
        if not callable(extension):
            raise TypeError(f"Extension {name!r} must be callable")
        if name in self._extensions:
            logger.debug("Replacing selector extension", extension=name)
        self._extensions[name] = extension

    def define_where(self, name: str, extension: Extension) -> str:
        """Register a named filter, exposed as ``where_<name>``.

        Returns:
            The method name the extension is reachable under.

        Example:
            registry.define_where("old_enough", lambda s: s.where("age", ">", 30))
            selector.where_old_enough()
        """
        method_name = f"where_{name}"
        self.define(method_name, extension)
        return method_name

    def get_extension(self, name: str) -> Extension | None:
        return self._extensions.get(name)

    def has_extension(self, name: str) -> bool:
        return name in self._extensions


# Process-wide registry used by selectors created without one
default_registry = SelectorRegistry()
