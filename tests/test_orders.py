"""
Tests for OrderLifecycleEngine: placement, edits, status moves, cancel and
billing, and how each of them moves the table.
"""

import asyncio

import pytest

from dineai.core.exceptions import (
    AlreadyCompleted,
    CannotBillCancelled,
    InvalidCancellation,
    InvalidOrderStatus,
    InvalidToolArguments,
    ItemNotFound,
    ItemUnavailable,
    OrderClosed,
    OrderNotFound,
    TableNotFound,
    TableUnavailable,
)
from dineai.services.menu import StaticMenuCatalog
from dineai.services.orders import OrderLifecycleEngine, RequestedLine
from tests.conftest import set_tax_settings


def paneer(quantity=2):
    return [RequestedLine("Paneer Tikka", quantity)]


class TestPlaceOrder:

    @pytest.mark.asyncio
    async def test_place_order_on_free_table(self, seeded, orders, tables):
        """Should number the order, price it and occupy the table."""
        result = await orders.place_order("R1", "u1", paneer(), table_number="5")

        order = result["order"]
        assert order["order_id"] == 1
        assert order["status"] == "confirmed"
        assert order["subtotal"] == 400.0
        assert order["tax_amount"] == 0.0
        assert order["final_amount"] == 400.0
        assert order["order_number"].startswith("ORD-")
        assert order["customer_name"] == "Customer"
        assert order["created_by"] == "u1"
        assert result["message"] == (
            "Order #1 placed successfully for table 5. "
            "Items: 2x Paneer Tikka. Total: ₹400.00"
        )

        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "occupied"
        assert table["current_order_id"] == order["id"]

    @pytest.mark.asyncio
    async def test_daily_numbers_increase(self, seeded, orders):
        first = await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        second = await orders.place_order("R1", "u1", paneer(1), order_type="takeaway")

        assert first["order"]["order_id"] == 1
        assert second["order"]["order_id"] == 2
        assert second["order"]["order_type"] == "takeaway"
        assert second["order"]["table_number"] is None

    @pytest.mark.asyncio
    async def test_occupied_table_is_refused_without_writing(self, seeded, orders, counters):
        await orders.place_order("R1", "u1", paneer(), table_number="5")

        with pytest.raises(TableUnavailable) as exc:
            await orders.place_order("R1", "u2", paneer(1), table_number="5")

        assert exc.value.status == "occupied"
        listed = await orders.list_orders("R1")
        assert listed["count"] == 1
        assert await counters.peek("R1") == 1

    @pytest.mark.asyncio
    async def test_unknown_table_is_refused(self, seeded, orders):
        with pytest.raises(TableNotFound):
            await orders.place_order("R1", "u1", paneer(), table_number="42")

    @pytest.mark.asyncio
    async def test_empty_order_is_refused(self, seeded, orders):
        with pytest.raises(InvalidToolArguments):
            await orders.place_order("R1", "u1", [])

    @pytest.mark.asyncio
    async def test_unknown_item_leaves_table_free(self, seeded, orders, tables):
        with pytest.raises(ItemNotFound):
            await orders.place_order(
                "R1", "u1", [RequestedLine("Paneer Tika")], table_number="5"
            )

        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "available"

    @pytest.mark.asyncio
    async def test_unavailable_item_is_refused(self, seeded, orders):
        with pytest.raises(ItemUnavailable):
            await orders.place_order("R1", "u1", [RequestedLine("Mango Lassi")])

    @pytest.mark.asyncio
    async def test_tax_is_applied_per_component(self, seeded, orders, session_factory):
        await set_tax_settings(session_factory, {
            "enabled": True,
            "taxes": [
                {"name": "CGST", "rate": 2.5, "enabled": True},
                {"name": "SGST", "rate": 2.5, "enabled": True},
            ],
        })

        result = await orders.place_order("R1", "u1", paneer(), order_type="takeaway")

        order = result["order"]
        assert order["tax_amount"] == 20.0
        assert order["final_amount"] == 420.0
        assert [t["name"] for t in order["tax_breakdown"]] == ["CGST", "SGST"]

    @pytest.mark.asyncio
    async def test_variant_line_uses_variant_price(self, seeded, orders):
        result = await orders.place_order(
            "R1", "u1", [RequestedLine("Butter Chicken", 1, variant="Half")], order_type="takeaway"
        )

        assert result["order"]["final_amount"] == 180.0
        assert result["order"]["items"][0]["variant"] == {"name": "Half", "price": 180.0}

    @pytest.mark.asyncio
    async def test_room_service_order_bills_to_room(self, seeded, orders):
        result = await orders.place_order(
            "R1", "u1", paneer(1), order_type="room-service", room_number="204"
        )

        assert result["order"]["payment_status"] == "hotel-billing"
        assert "for room 204" in result["message"]

    @pytest.mark.asyncio
    async def test_concurrent_orders_for_one_table(self, seeded, orders, tables):
        """Should let exactly one of several simultaneous orders take the table."""
        attempts = [
            orders.place_order("R1", f"u{i}", paneer(1), table_number="5")
            for i in range(5)
        ]

        results = await asyncio.gather(*attempts, return_exceptions=True)

        placed = [r for r in results if isinstance(r, dict)]
        refused = [r for r in results if isinstance(r, TableUnavailable)]
        assert len(placed) == 1
        assert len(refused) == 4

        table = await tables.get_table_status("R1", "5")
        assert table["current_order_id"] == placed[0]["order"]["id"]

    @pytest.mark.asyncio
    async def test_concurrent_takeaway_orders_get_distinct_numbers(self, seeded, orders):
        results = await asyncio.gather(*[
            orders.place_order("R1", f"u{i}", paneer(1), order_type="takeaway")
            for i in range(10)
        ])

        numbers = sorted(r["order"]["order_id"] for r in results)
        assert numbers == list(range(1, 11))


class TestUpdateOrder:

    @pytest.mark.asyncio
    async def test_add_items_appends_and_retotals(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), table_number="5")

        result = await orders.update_order(
            "R1", "u1", 1, add_items=[RequestedLine("Garlic Naan", 2)]
        )

        order = result["order"]
        assert [line["name"] for line in order["items"]] == ["Paneer Tikka", "Garlic Naan"]
        assert order["items"][1]["is_new"] is True
        assert order["final_amount"] == 520.0
        assert result["message"].startswith("Order #1 updated: items updated (2 items")

    @pytest.mark.asyncio
    async def test_replace_then_add(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")

        result = await orders.update_order(
            "R1", "u1", 1,
            items=[RequestedLine("Naan", 1)],
            add_items=[RequestedLine("Garlic Naan", 1)],
        )

        assert [line["name"] for line in result["order"]["items"]] == ["Naan", "Garlic Naan"]
        assert result["order"]["final_amount"] == 100.0

    @pytest.mark.asyncio
    async def test_added_items_are_taxed_per_component(self, seeded, orders, session_factory):
        await set_tax_settings(session_factory, {
            "enabled": True,
            "taxes": [
                {"name": "CGST", "rate": 2.5, "enabled": True},
                {"name": "SGST", "rate": 2.5, "enabled": True},
                {"name": "Service", "rate": 10, "enabled": False},
            ],
        })
        await orders.place_order("R1", "u1", paneer(1), table_number="5")

        result = await orders.update_order(
            "R1", "u1", 1, add_items=[RequestedLine("Garlic Naan", 1)]
        )

        order = result["order"]
        assert order["subtotal"] == 260.0
        assert order["tax_amount"] == 13.0
        assert order["final_amount"] == 273.0
        assert order["final_amount"] == order["subtotal"] + order["tax_amount"]
        assert order["tax_breakdown"] == [
            {"name": "CGST", "rate": 2.5, "amount": 6.5},
            {"name": "SGST", "rate": 2.5, "amount": 6.5},
        ]

    @pytest.mark.asyncio
    async def test_replaced_items_use_default_tax_rate(self, seeded, orders, session_factory):
        await set_tax_settings(session_factory, {"enabled": True, "defaultTaxRate": 5})
        await orders.place_order("R1", "u1", paneer(3), order_type="takeaway")

        result = await orders.update_order(
            "R1", "u1", 1,
            items=[RequestedLine("Paneer Tikka", 1)],
            add_items=[RequestedLine("Naan", 1)],
        )

        order = result["order"]
        assert order["subtotal"] == 240.0
        assert order["tax_amount"] == 12.0
        assert order["final_amount"] == 252.0
        assert order["final_amount"] == order["subtotal"] + order["tax_amount"]

    @pytest.mark.asyncio
    async def test_move_to_another_table(self, seeded, orders, tables):
        placed = await orders.place_order("R1", "u1", paneer(), table_number="5")

        result = await orders.update_order("R1", "u1", 1, table_number="6")

        assert result["order"]["table_number"] == "6"
        old = await tables.get_table_status("R1", "5")
        new = await tables.get_table_status("R1", "6")
        assert old["status"] == "available"
        assert new["status"] == "occupied"
        assert new["current_order_id"] == placed["order"]["id"]

    @pytest.mark.asyncio
    async def test_move_to_busy_table_changes_nothing(self, seeded, orders, tables):
        await orders.place_order("R1", "u1", paneer(), table_number="5")
        await orders.place_order("R1", "u1", paneer(), table_number="6")

        with pytest.raises(TableUnavailable):
            await orders.update_order("R1", "u1", 1, table_number="6")

        order = (await orders.get_order("R1", 1))["order"]
        assert order["table_number"] == "5"
        assert (await tables.get_table_status("R1", "5"))["status"] == "occupied"

    @pytest.mark.asyncio
    async def test_clearing_table_releases_it(self, seeded, orders, tables):
        await orders.place_order("R1", "u1", paneer(), table_number="5")

        result = await orders.update_order("R1", "u1", 1, table_number=None)

        assert result["order"]["table_number"] is None
        assert (await tables.get_table_status("R1", "5"))["status"] == "available"

    @pytest.mark.asyncio
    async def test_special_instructions_accumulate(self, seeded, orders):
        await orders.place_order(
            "R1", "u1", paneer(), order_type="takeaway", special_instructions="no onion"
        )

        result = await orders.update_order("R1", "u1", 1, special_instructions="extra spicy")

        assert result["order"]["special_instructions"] == "no onion; extra spicy"

    @pytest.mark.asyncio
    async def test_closed_order_cannot_change(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        await orders.cancel_order("R1", 1)

        with pytest.raises(OrderClosed) as exc:
            await orders.update_order("R1", "u1", 1, add_items=[RequestedLine("Naan")])

        assert exc.value.message == "Cannot update order #1 with status: cancelled"

    @pytest.mark.asyncio
    async def test_existing_prices_survive_menu_changes(self, seeded, orders, menu):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        await menu.update_menu_item("R1", item_name="Paneer Tikka", new_price=250)

        result = await orders.update_order(
            "R1", "u1", 1, add_items=[RequestedLine("Paneer Tikka", 1)]
        )

        prices = [line["unit_price"] for line in result["order"]["items"]]
        assert prices == [200.0, 250.0]
        assert result["order"]["final_amount"] == 650.0


class TestStatusTransitions:

    @pytest.mark.asyncio
    async def test_open_statuses_move_freely(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")

        await orders.update_order_status("R1", 1, "ready")
        result = await orders.update_order_status("R1", 1, "preparing")

        assert result["order"]["status"] == "preparing"
        assert result["message"] == "Order #1 status updated to preparing"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["completed", "cancelled", "served"])
    async def test_terminal_or_unknown_targets_are_refused(self, seeded, orders, status):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")

        with pytest.raises(InvalidOrderStatus):
            await orders.update_order_status("R1", 1, status)

    @pytest.mark.asyncio
    async def test_unknown_order(self, seeded, orders):
        with pytest.raises(OrderNotFound):
            await orders.update_order_status("R1", 99, "ready")


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_frees_table(self, seeded, orders, tables):
        await orders.place_order("R1", "u1", paneer(), table_number="5")

        result = await orders.cancel_order("R1", 1)

        assert result["order"]["status"] == "cancelled"
        assert result["message"] == "Order #1 has been cancelled"
        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "available"
        assert table["current_order_id"] is None

    @pytest.mark.asyncio
    async def test_ready_order_cannot_be_cancelled(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        await orders.update_order_status("R1", 1, "ready")

        with pytest.raises(InvalidCancellation):
            await orders.cancel_order("R1", 1)

    @pytest.mark.asyncio
    async def test_billed_order_cannot_be_cancelled(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        await orders.complete_billing("R1", 1, "cash")

        with pytest.raises(AlreadyCompleted):
            await orders.cancel_order("R1", 1)


class TestBilling:

    @pytest.mark.asyncio
    async def test_billing_with_discount(self, seeded, orders, tables):
        await orders.place_order("R1", "u1", paneer(), table_number="5")

        result = await orders.complete_billing("R1", 1, "upi", discount=50)

        order = result["order"]
        assert order["status"] == "completed"
        assert order["payment_method"] == "upi"
        assert order["payment_status"] == "completed"
        assert order["discount"] == 50.0
        assert order["final_total"] == 350.0
        assert result["message"] == (
            "Order #1 billing completed. Payment: upi. "
            "Discount: ₹50.00. Final Total: ₹350.00"
        )
        assert (await tables.get_table_status("R1", "5"))["status"] == "available"

    @pytest.mark.asyncio
    async def test_billing_twice_is_refused(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        await orders.complete_billing("R1", 1, "cash")

        with pytest.raises(AlreadyCompleted):
            await orders.complete_billing("R1", 1, "cash")

    @pytest.mark.asyncio
    async def test_cancelled_order_cannot_be_billed(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")
        await orders.cancel_order("R1", 1)

        with pytest.raises(CannotBillCancelled):
            await orders.complete_billing("R1", 1, "card")

    @pytest.mark.asyncio
    async def test_billing_does_not_free_a_table_taken_by_another_order(
        self, seeded, orders, tables
    ):
        await orders.place_order("R1", "u1", paneer(), table_number="5")
        # Staff free the table by hand while order #1 is still open
        await tables.set_status("R1", "5", "available")
        second = await orders.place_order("R1", "u2", paneer(1), table_number="5")

        await orders.complete_billing("R1", 1, "cash")

        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "occupied"
        assert table["current_order_id"] == second["order"]["id"]


class TestReads:

    @pytest.mark.asyncio
    async def test_lookup_by_internal_id(self, seeded, orders):
        placed = await orders.place_order("R1", "u1", paneer(), order_type="takeaway")

        found = await orders.get_order("R1", placed["order"]["id"])

        assert found["order"]["order_id"] == 1

    @pytest.mark.asyncio
    async def test_orders_are_scoped_to_restaurant(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), order_type="takeaway")

        with pytest.raises(OrderNotFound):
            await orders.get_order("R2", 1)

    @pytest.mark.asyncio
    async def test_list_filters_by_status_and_table(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), table_number="5")
        await orders.place_order("R1", "u1", paneer(), table_number="6")
        await orders.update_order_status("R1", 2, "ready")

        ready = await orders.list_orders("R1", status="ready")
        on_five = await orders.list_orders("R1", table_number="5")
        everything = await orders.list_orders("R1", status="all")

        assert [o["order_id"] for o in ready["orders"]] == [2]
        assert [o["order_id"] for o in on_five["orders"]] == [1]
        assert everything["count"] == 2

    @pytest.mark.asyncio
    async def test_table_order_is_the_open_one(self, seeded, orders):
        await orders.place_order("R1", "u1", paneer(), table_number="5")

        result = await orders.get_table_order("R1", "5")
        assert result["order"]["order_id"] == 1

        await orders.complete_billing("R1", 1, "cash")
        with pytest.raises(OrderNotFound) as exc:
            await orders.get_table_order("R1", "5")
        assert exc.value.message == "No active order for table 5"


class TestUnknownRestaurant:

    @pytest.mark.asyncio
    async def test_restaurant_without_record_is_priced_without_tax(
        self, session_factory, tables, counters, test_settings
    ):
        engine = OrderLifecycleEngine(
            session_factory, tables, counters, StaticMenuCatalog(), test_settings
        )

        result = await engine.place_order(
            "R9", "u1", [RequestedLine("Paneer Tikka", 1)], order_type="takeaway"
        )

        assert result["order"]["order_id"] == 1
        assert result["order"]["tax_amount"] == 0.0
        assert result["order"]["final_amount"] == 220.0
