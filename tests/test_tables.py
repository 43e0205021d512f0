"""
Tests for TableStateEngine.
"""

import pytest

from dineai.core.exceptions import InvalidTableStatus, TableNotFound, TableUnavailable
from dineai.database import run_in_transaction
from dineai.models import TableStatus


async def occupy(session_factory, tables, table_number, order_id):
    async def _occupy(session):
        return await tables.occupy_by_name(session, "R1", table_number, order_id)

    return await run_in_transaction(session_factory, _occupy)


class TestLookup:

    @pytest.mark.asyncio
    async def test_table_names_match_ignoring_case(self, seeded, tables):
        table = await tables.get_table_status("R1", "t1")

        assert table["number"] == "T1"
        assert table["floor"] == "Terrace"
        assert table["status"] == "available"

    @pytest.mark.asyncio
    async def test_unknown_table_raises(self, seeded, tables):
        with pytest.raises(TableNotFound) as exc:
            await tables.get_table_status("R1", "99")

        assert '"99"' in exc.value.message

    @pytest.mark.asyncio
    async def test_tables_are_scoped_to_restaurant(self, seeded, tables):
        with pytest.raises(TableNotFound):
            await tables.get_table_status("R2", "5")

    @pytest.mark.asyncio
    async def test_floor_filter_scopes_lookup(self, seeded, tables):
        with pytest.raises(TableNotFound):
            await tables.get_table_status("R1", "5", floor="Terrace")


class TestValidateAvailable:

    @pytest.mark.asyncio
    async def test_available_table_passes(self, seeded, tables):
        table = await tables.validate_available("R1", "5")
        assert table.status == TableStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_occupied_table_is_refused(self, seeded, tables, session_factory):
        await occupy(session_factory, tables, "5", "order-1")

        with pytest.raises(TableUnavailable) as exc:
            await tables.validate_available("R1", "5")

        assert exc.value.status == "occupied"
        assert "occupied by another customer" in exc.value.message


class TestOccupyAndRelease:

    @pytest.mark.asyncio
    async def test_occupy_records_order(self, seeded, tables, session_factory):
        await occupy(session_factory, tables, "5", "order-1")

        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "occupied"
        assert table["current_order_id"] == "order-1"

    @pytest.mark.asyncio
    async def test_second_occupy_fails(self, seeded, tables, session_factory):
        await occupy(session_factory, tables, "5", "order-1")

        with pytest.raises(TableUnavailable):
            await occupy(session_factory, tables, "5", "order-2")

        table = await tables.get_table_status("R1", "5")
        assert table["current_order_id"] == "order-1"

    @pytest.mark.asyncio
    async def test_release_frees_the_table(self, seeded, tables, session_factory):
        await occupy(session_factory, tables, "5", "order-1")

        async def _release(session):
            return await tables.release(session, "R1", "5", order_id="order-1")

        await run_in_transaction(session_factory, _release)

        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "available"
        assert table["current_order_id"] is None

    @pytest.mark.asyncio
    async def test_release_leaves_another_orders_table_alone(
        self, seeded, tables, session_factory
    ):
        await occupy(session_factory, tables, "5", "order-1")

        async def _release(session):
            return await tables.release(session, "R1", "5", order_id="order-2")

        await run_in_transaction(session_factory, _release)

        table = await tables.get_table_status("R1", "5")
        assert table["status"] == "occupied"
        assert table["current_order_id"] == "order-1"

    @pytest.mark.asyncio
    async def test_release_of_unknown_table_is_a_no_op(self, seeded, tables, session_factory):
        async def _release(session):
            return await tables.release(session, "R1", "42")

        assert await run_in_transaction(session_factory, _release) is None


class TestReservations:

    @pytest.mark.asyncio
    async def test_reserve_available_table(self, seeded, tables):
        result = await tables.reserve(
            "R1", "3", guests=4, time="19:30", customer_name="Asha", customer_phone="98450"
        )

        assert result["message"] == "Table 3 reserved for 4 guests (Asha)"
        assert result["table"]["status"] == "reserved"
        assert result["table"]["reserved_by"] == "Asha"
        assert result["table"]["reserved_guests"] == 4
        assert result["table"]["reserved_time"] == "19:30"

    @pytest.mark.asyncio
    async def test_reserved_table_cannot_be_reserved_again(self, seeded, tables):
        await tables.reserve("R1", "3", guests=2)

        with pytest.raises(TableUnavailable) as exc:
            await tables.reserve("R1", "3", guests=2)

        assert "reserved for another customer" in exc.value.message

    @pytest.mark.asyncio
    async def test_marking_available_clears_reservation(self, seeded, tables):
        await tables.reserve("R1", "3", guests=2, customer_name="Asha")

        result = await tables.set_status("R1", "3", "available")

        assert result["message"] == "Table 3 is now available"
        assert result["table"]["reserved_by"] is None
        assert result["table"]["reserved_guests"] is None


class TestSetStatus:

    @pytest.mark.asyncio
    async def test_cleaning_clears_order_reference(self, seeded, tables, session_factory):
        await occupy(session_factory, tables, "5", "order-1")

        result = await tables.set_status("R1", "5", "cleaning")

        assert result["table"]["status"] == "cleaning"
        assert result["table"]["current_order_id"] is None

    @pytest.mark.asyncio
    async def test_occupied_cannot_be_set_directly(self, seeded, tables):
        with pytest.raises(InvalidTableStatus):
            await tables.set_status("R1", "5", "occupied")

    @pytest.mark.asyncio
    async def test_unknown_status_is_refused(self, seeded, tables):
        with pytest.raises(InvalidTableStatus) as exc:
            await tables.set_status("R1", "5", "on fire")

        assert "available, occupied, reserved, cleaning" in exc.value.message


class TestListTables:

    @pytest.mark.asyncio
    async def test_lists_all_tables_with_summary(self, seeded, tables):
        await tables.reserve("R1", "2", guests=2)
        await tables.set_status("R1", "4", "cleaning")

        result = await tables.list_tables("R1")

        assert result["total"] == 7
        assert result["summary"] == {"available": 5, "occupied": 0, "reserved": 1, "cleaning": 1}
        assert [t["number"] for t in result["tables"]][-1] == "T1"

    @pytest.mark.asyncio
    async def test_filters_by_status_and_floor(self, seeded, tables):
        await tables.set_status("R1", "4", "cleaning")

        cleaning = await tables.list_tables("R1", status="cleaning")
        terrace = await tables.list_tables("R1", floor="terrace")

        assert [t["number"] for t in cleaning["tables"]] == ["4"]
        assert [t["number"] for t in terrace["tables"]] == ["T1"]
