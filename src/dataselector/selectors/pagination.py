"""Page-number pagination for selectors.

``selector.paginate(25)`` records a PaginationParams; ``get()`` then runs a
count query plus one LIMIT/OFFSET query and returns a Page instead of a
plain list.
"""

import math
from typing import Any, Iterator, Mapping, Optional
from urllib.parse import urlencode

from dataselector.core.config import Settings, settings as default_settings


class PaginationParams:
    """Pagination request recorded by ``Selector.paginate``.

    Attributes:
        page_size: Rows per page (1..settings.max_page_size)
        page: 1-based page number to fetch
        extra_query_params: Query parameters appended to every page link

    Raises:
        ValueError: If page size or page number is out of range
    """

    def __init__(
        self,
        page_size: int,
        extra_query_params: Optional[Mapping[str, str]] = None,
        page: int = 1,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or default_settings
        if page_size <= 0 or page_size > settings.max_page_size:
            raise ValueError(f"Page size must be between 1 and {settings.max_page_size}")
        if page < 1:
            raise ValueError("Page must be at least 1")

        self.page_size = page_size
        self.page = page
        # Anything other than a mapping means "no extra link parameters"
        self.extra_query_params = (
            dict(extra_query_params) if isinstance(extra_query_params, Mapping) else None
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Page:
    """One page of rows plus the metadata needed to render page links.

    Iterating a Page yields its rows, so eager loading and formatters treat
    it like any other result set.

    Example:
        page = await CustomerSelector(session).paginate(10, {"sort": "name"}).get()
        for row in page:
            print(row["name"])
        if page.has_next:
            print(page.next_page_url)   # /?page=2&sort=name
    """

    def __init__(
        self,
        items: list[dict[str, Any]],
        total: int,
        page: int,
        page_size: int,
        path: str = "/",
        page_query_param: str = "page",
        query_params: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.path = path
        self.page_query_param = page_query_param
        self.query_params: dict[str, str] = dict(query_params or {})
        self.last_page = max(math.ceil(total / page_size), 1)
        self.has_next = page < self.last_page
        self.has_prev = page > 1

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> dict[str, Any]:
        return self.items[index]

    def __repr__(self) -> str:
        return f"Page(page={self.page}, page_size={self.page_size}, total={self.total}, items={len(self.items)})"

    def append(self, params: Mapping[str, str]) -> "Page":
        """Add query parameters to the generated page links."""
        self.query_params.update(params)
        return self

    def url(self, page: int) -> str:
        """Link to ``page``, carrying the extra query parameters."""
        query = {self.page_query_param: page, **self.query_params}
        return f"{self.path}?{urlencode(query)}"

    @property
    def next_page_url(self) -> Optional[str]:
        return self.url(self.page + 1) if self.has_next else None

    @property
    def prev_page_url(self) -> Optional[str]:
        return self.url(self.page - 1) if self.has_prev else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.items,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "last_page": self.last_page,
            "next_page_url": self.next_page_url,
            "prev_page_url": self.prev_page_url,
        }
