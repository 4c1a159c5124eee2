"""Test relation loading after the primary fetch."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from dataselector.selectors import (
    EagerLoad,
    RelationNotFoundError,
    Selector,
    SelectorError,
    SoftDeleteNotSupportedError,
)
from tests.models import Customer, Order


class CustomerSelector(Selector):
    model = Customer
    default_columns = ["id", "name", "country_id"]


class OrderSelector(Selector):
    model = Order
    default_columns = ["id", "customer_id", "date"]


def by_id(rows: list[dict]) -> dict[int, dict]:
    return {row["id"]: row for row in rows}


def order_ids(row: dict) -> list[int]:
    return sorted(order["id"] for order in row["orders"])


class TestAdd:
    """Test EagerLoading.add bookkeeping."""

    def test_defaults(self, mock_session: AsyncMock) -> None:
        loading = CustomerSelector(mock_session).eager_loading()
        loading.add("orders")
        assert loading.entries["orders"] == EagerLoad("orders", None, None, False)

    def test_readding_replaces(self, mock_session: AsyncMock) -> None:
        loading = CustomerSelector(mock_session).with_("orders", ["id"]).eager_loading()
        loading.add("orders", ["date"], ("status", "paid"), include_trashed=True)

        assert len(loading) == 1
        assert loading.entries["orders"] == EagerLoad("orders", ["date"], ("status", "paid"), True)

    def test_star_means_all_columns(self, mock_session: AsyncMock) -> None:
        loading = CustomerSelector(mock_session).with_("orders", ["*"]).eager_loading()
        assert loading.entries["orders"].columns is None

    def test_invalid_filter(self, mock_session: AsyncMock) -> None:
        with pytest.raises(TypeError, match="Relation filter"):
            CustomerSelector(mock_session).eager_loading().add("orders", filter=["status", "paid"])


class TestLoad:
    """Test loading relations into fetched rows."""

    async def test_has_many(self, seeded_session: AsyncSession) -> None:
        """Test each parent gets only its own related rows with the chosen columns."""
        rows = by_id(await CustomerSelector(seeded_session).with_("orders", ["id", "date"]).get())

        assert order_ids(rows[1]) == [10, 11]
        assert order_ids(rows[2]) == []
        assert order_ids(rows[3]) == [12]
        assert order_ids(rows[5]) == []
        for row in rows.values():
            for order in row["orders"]:
                assert set(order) == {"id", "date"}

    async def test_all_columns(self, seeded_session: AsyncSession) -> None:
        rows = by_id(await CustomerSelector(seeded_session).with_("orders").get())
        order = rows[3]["orders"][0]
        assert order["customer_id"] == 3
        assert order["total"] == 120
        assert order["deleted_at"] is None

    async def test_trashed_related_rows(self, seeded_session: AsyncSession) -> None:
        rows = by_id(
            await CustomerSelector(seeded_session)
            .with_("orders", ["id"], include_trashed=True)
            .get()
        )
        assert order_ids(rows[3]) == [12, 13]

    async def test_equality_filter(self, seeded_session: AsyncSession) -> None:
        rows = by_id(await CustomerSelector(seeded_session).with_("orders", ["id"], ("status", "paid")).get())
        assert order_ids(rows[1]) == [10]
        assert order_ids(rows[3]) == [12]

    async def test_comparison_filter(self, seeded_session: AsyncSession) -> None:
        rows = by_id(await CustomerSelector(seeded_session).with_("orders", ["id"], ("total", ">=", 90)).get())
        assert order_ids(rows[1]) == [11]
        assert order_ids(rows[3]) == [12]

    async def test_raw_filter(self, seeded_session: AsyncSession) -> None:
        rows = by_id(await CustomerSelector(seeded_session).with_("orders", ["id"], "total > 50").get())
        assert order_ids(rows[1]) == [11]
        assert order_ids(rows[3]) == [12]

    async def test_relationship_join_criteria(self, seeded_session: AsyncSession) -> None:
        """Test extra criteria in the relationship's primaryjoin filter related rows."""
        rows = by_id(await CustomerSelector(seeded_session).with_("paid_orders", ["id", "status"]).get())

        assert [order["id"] for order in rows[1]["paid_orders"]] == [10]
        assert [order["id"] for order in rows[3]["paid_orders"]] == [12]
        assert rows[2]["paid_orders"] == []
        for row in rows.values():
            assert all(order["status"] == "paid" for order in row["paid_orders"])

    async def test_relationship_join_criteria_with_filter(self, seeded_session: AsyncSession) -> None:
        rows = by_id(
            await CustomerSelector(seeded_session)
            .with_("paid_orders", ["id"], ("total", "<", 100), include_trashed=True)
            .get()
        )
        assert [order["id"] for order in rows[1]["paid_orders"]] == [10]
        assert [order["id"] for order in rows[3]["paid_orders"]] == [13]

    async def test_relationship_order_by(self, seeded_session: AsyncSession) -> None:
        """Test related rows come back in the relationship's order_by order."""
        rows = by_id(await CustomerSelector(seeded_session).with_("recent_orders", ["id"]).get())
        assert rows[1]["recent_orders"] == [{"id": 11}, {"id": 10}]

        rows = by_id(
            await CustomerSelector(seeded_session)
            .with_("recent_orders", ["id"], include_trashed=True)
            .get()
        )
        assert rows[3]["recent_orders"] == [{"id": 13}, {"id": 12}]

    async def test_belongs_to(self, seeded_session: AsyncSession) -> None:
        """Test scalar relations attach one dict, or None for a trashed/missing parent."""
        rows = by_id(await OrderSelector(seeded_session).with_("customer", ["name"]).get())

        assert rows[10]["customer"] == {"name": "Ann"}
        assert rows[12]["customer"] == {"name": "Cleo"}
        assert rows[14]["customer"] is None

    async def test_belongs_to_trashed(self, seeded_session: AsyncSession) -> None:
        rows = by_id(
            await OrderSelector(seeded_session)
            .with_("customer", ["name"], include_trashed=True)
            .get()
        )
        assert rows[14]["customer"] == {"name": "Dan"}

    async def test_missing_foreign_key(self, seeded_session: AsyncSession) -> None:
        rows = by_id(await CustomerSelector(seeded_session).with_("country", ["code"]).get())
        assert rows[1]["country"] == {"code": "FR"}
        assert rows[2]["country"] == {"code": "JP"}
        assert rows[3]["country"] is None

    async def test_parent_key_not_selected(self, seeded_session: AsyncSession) -> None:
        """Test rows without the join key get empty relations."""
        rows = await CustomerSelector(seeded_session, columns=["name"]).with_("orders").get()
        assert rows
        assert all(row["orders"] == [] for row in rows)

    async def test_several_relations(self, seeded_session: AsyncSession) -> None:
        rows = by_id(
            await CustomerSelector(seeded_session)
            .with_("orders", ["id"])
            .with_("country", ["name"])
            .get()
        )
        assert order_ids(rows[1]) == [10, 11]
        assert rows[1]["country"] == {"name": "France"}

    async def test_paginated_rows(self, seeded_session: AsyncSession) -> None:
        page = await CustomerSelector(seeded_session).oldest_first().paginate(1).with_("orders", ["id"]).get()
        assert len(page) == 1
        assert order_ids(page[0]) == [10, 11]

    async def test_no_rows_no_query(self, mock_session: AsyncMock) -> None:
        """Test that nothing is loaded when the primary fetch is empty."""
        mock_session.execute.return_value = []
        rows = await CustomerSelector(mock_session).with_("orders").get()
        assert rows == []
        mock_session.execute.assert_called_once()


class TestErrors:
    """Test relation errors."""

    async def test_unknown_relation(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(RelationNotFoundError, match="Customer has no relationship 'invoices'"):
            await CustomerSelector(seeded_session).with_("invoices").get()

    async def test_association_table(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(SelectorError, match="association table"):
            await CustomerSelector(seeded_session).with_("tags").get()

    async def test_join_on_parent_columns(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(SelectorError, match=r"joins on parent columns \['active'\]"):
            await CustomerSelector(seeded_session).with_("orders_if_active").get()

    async def test_trashed_on_plain_relation(self, seeded_session: AsyncSession) -> None:
        with pytest.raises(SoftDeleteNotSupportedError):
            await CustomerSelector(seeded_session).with_("country", include_trashed=True).get()
