"""
Table State Engine

Occupancy state machine for physical tables:

    available -> occupied -> available (billing/cancel) | cleaning
    available -> reserved -> available
    cleaning  -> available

Invariant: current_order_id is set exactly while a table is occupied, and a
table that returns to available has its order and reservation fields cleared
in the same write. Every transition goes through _status_changes so the
invariant lives in one place.

Tables are looked up by name across the restaurant's floors, ordered by floor
position. If two floors share a table name, the first floor wins unless the
caller scopes the lookup with a floor name.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dineai.core.exceptions import (
    InvalidTableStatus,
    TableNotFound,
    TableUnavailable,
)
from dineai.database import SessionFactory, as_utc, run_in_transaction, utcnow
from dineai.models import Floor, RestaurantTable, TableStatus

logger = logging.getLogger(__name__)

RESERVATION_FIELDS = (
    "reserved_by",
    "reserved_phone",
    "reserved_guests",
    "reserved_time",
    "reserved_at",
)


def _status_changes(
    status: TableStatus,
    order_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Column values for moving a table into ``status``.

    occupied requires the order that occupies it; every other status clears
    current_order_id, and available also clears the reservation.
    """
    now = now or utcnow()
    if status == TableStatus.OCCUPIED:
        if not order_id:
            raise InvalidTableStatus(
                "A table can only be marked occupied by placing an order on it."
            )
        return {
            "status": status,
            "current_order_id": order_id,
            "last_order_time": now,
            "updated_at": now,
        }

    changes: dict[str, Any] = {
        "status": status,
        "current_order_id": None,
        "updated_at": now,
    }
    if status == TableStatus.AVAILABLE:
        changes.update({field: None for field in RESERVATION_FIELDS})
    return changes


def _apply_status(
    table: RestaurantTable,
    status: TableStatus,
    order_id: Optional[str] = None,
) -> RestaurantTable:
    for field, value in _status_changes(status, order_id).items():
        setattr(table, field, value)
    return table


def _parse_status(status: str) -> TableStatus:
    try:
        return TableStatus(str(status).strip().lower())
    except ValueError:
        valid = ", ".join(s.value for s in TableStatus)
        raise InvalidTableStatus(
            f'"{status}" is not a table status. Use one of: {valid}.'
        )


def table_to_dict(table: RestaurantTable, floor: Optional[Floor] = None) -> dict[str, Any]:
    reserved_at = as_utc(table.reserved_at)
    return {
        "id": table.id,
        "number": table.name,
        "floor": floor.name if floor else None,
        "floor_id": table.floor_id,
        "status": table.status.value,
        "capacity": table.capacity,
        "current_order_id": table.current_order_id,
        "reserved_by": table.reserved_by,
        "reserved_phone": table.reserved_phone,
        "reserved_guests": table.reserved_guests,
        "reserved_time": table.reserved_time,
        "reserved_at": reserved_at.isoformat() if reserved_at else None,
    }


class TableStateEngine:
    """
    Reads and transitions restaurant tables.

    Methods taking a ``session`` run inside the caller's transaction; the
    others open their own through run_in_transaction.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    # =========================================================================
    # LOOKUP
    # =========================================================================

    async def find_table(
        self,
        session: AsyncSession,
        restaurant_id: str,
        table_number: str,
        floor: Optional[str] = None,
        for_update: bool = False,
    ) -> Optional[tuple[RestaurantTable, Floor]]:
        """First table whose name matches case-insensitively, by floor position."""
        name = str(table_number).strip().lower()
        stmt = (
            select(RestaurantTable, Floor)
            .join(Floor, Floor.id == RestaurantTable.floor_id)
            .where(
                RestaurantTable.restaurant_id == restaurant_id,
                Floor.restaurant_id == restaurant_id,
                func.lower(RestaurantTable.name) == name,
            )
            .order_by(Floor.position, Floor.name, RestaurantTable.name)
            .limit(1)
        )
        if floor:
            stmt = stmt.where(func.lower(Floor.name) == floor.strip().lower())
        if for_update:
            stmt = stmt.with_for_update(of=RestaurantTable)

        row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return row[0], row[1]

    async def get_table(
        self,
        session: AsyncSession,
        restaurant_id: str,
        table_number: str,
        floor: Optional[str] = None,
        for_update: bool = False,
    ) -> tuple[RestaurantTable, Floor]:
        found = await self.find_table(
            session, restaurant_id, table_number, floor=floor, for_update=for_update
        )
        if found is None:
            raise TableNotFound(table_number)
        return found

    async def validate_available(
        self,
        restaurant_id: str,
        table_number: str,
        floor: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> RestaurantTable:
        """
        Ensure the table exists and is free. Performs no writes.

        Raises:
            TableNotFound: no table with that name
            TableUnavailable: the table is occupied, reserved or being cleaned
        """
        if session is None:
            async with self.session_factory() as own_session:
                return await self.validate_available(
                    restaurant_id, table_number, floor=floor, session=own_session
                )

        table, _ = await self.get_table(session, restaurant_id, table_number, floor=floor)
        if table.status != TableStatus.AVAILABLE:
            raise TableUnavailable(table_number, table.status.value)
        return table

    # =========================================================================
    # TRANSITIONS (caller's transaction)
    # =========================================================================

    async def occupy(
        self,
        session: AsyncSession,
        table: RestaurantTable,
        order_id: str,
    ) -> RestaurantTable:
        """
        Mark ``table`` occupied by ``order_id``.

        The write only applies while the table is still available, so of two
        concurrent placements on one table exactly one succeeds; the other
        gets TableUnavailable and its transaction rolls back.
        """
        result = await session.execute(
            update(RestaurantTable)
            .where(
                RestaurantTable.id == table.id,
                RestaurantTable.restaurant_id == table.restaurant_id,
                RestaurantTable.status == TableStatus.AVAILABLE,
            )
            .values(**_status_changes(TableStatus.OCCUPIED, order_id))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await session.scalar(
                select(RestaurantTable.status).where(RestaurantTable.id == table.id)
            )
            status = current.value if current else "unknown"
            logger.info(f"Table {table.name} was taken before order {order_id} ({status})")
            raise TableUnavailable(table.name, status)

        await session.refresh(table)
        logger.info(f"Table {table.name} marked as occupied by order {order_id}")
        return table

    async def occupy_by_name(
        self,
        session: AsyncSession,
        restaurant_id: str,
        table_number: str,
        order_id: str,
    ) -> RestaurantTable:
        table, _ = await self.get_table(session, restaurant_id, table_number)
        if table.status != TableStatus.AVAILABLE:
            raise TableUnavailable(table_number, table.status.value)
        return await self.occupy(session, table, order_id)

    async def release(
        self,
        session: AsyncSession,
        restaurant_id: str,
        table_number: str,
        order_id: Optional[str] = None,
    ) -> Optional[RestaurantTable]:
        """
        Return a table to available, clearing its order and reservation.

        When ``order_id`` is given and the table is occupied by a different
        order, the table is left alone. Returns None if no table matches.
        """
        found = await self.find_table(session, restaurant_id, table_number, for_update=True)
        if found is None:
            logger.warning(f"Release skipped: table {table_number} not found for {restaurant_id}")
            return None

        table, _ = found
        if (
            order_id
            and table.status == TableStatus.OCCUPIED
            and table.current_order_id not in (None, order_id)
        ):
            logger.warning(
                f"Release skipped: table {table.name} is held by order "
                f"{table.current_order_id}, not {order_id}"
            )
            return table

        _apply_status(table, TableStatus.AVAILABLE)
        await session.flush()
        logger.info(f"Table {table.name} released (available)")
        return table

    # =========================================================================
    # OPERATIONS (own transaction)
    # =========================================================================

    async def reserve(
        self,
        restaurant_id: str,
        table_number: str,
        guests: int,
        time: Optional[str] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        floor: Optional[str] = None,
    ) -> dict[str, Any]:
        """Reserve an available table for a party."""

        async def _reserve(session: AsyncSession) -> dict[str, Any]:
            table, table_floor = await self.get_table(
                session, restaurant_id, table_number, floor=floor, for_update=True
            )
            if table.status != TableStatus.AVAILABLE:
                raise TableUnavailable(table_number, table.status.value)

            _apply_status(table, TableStatus.RESERVED)
            table.reserved_by = customer_name or "Guest"
            table.reserved_phone = customer_phone
            table.reserved_guests = guests
            table.reserved_time = time
            table.reserved_at = utcnow()
            await session.flush()
            return table_to_dict(table, table_floor)

        table = await run_in_transaction(
            self.session_factory, _reserve, label=f"reserve table {table_number}"
        )
        who = f" ({customer_name})" if customer_name else ""
        logger.info(f"Table {table_number} reserved for {guests} guests{who}")
        return {
            "success": True,
            "message": f"Table {table_number} reserved for {guests} guests{who}",
            "table": table,
        }

    async def set_status(
        self,
        restaurant_id: str,
        table_number: str,
        status: str,
        floor: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Operator-driven status change (cleaning done, reservation cancelled).

        Raises:
            InvalidTableStatus: unknown status, or occupied without an order
            TableNotFound: no table with that name
        """
        target = _parse_status(status)
        if target == TableStatus.OCCUPIED:
            raise InvalidTableStatus(
                f"Table {table_number} can only become occupied by placing an order on it."
            )

        async def _set(session: AsyncSession) -> dict[str, Any]:
            table, table_floor = await self.get_table(
                session, restaurant_id, table_number, floor=floor, for_update=True
            )
            previous = table.status
            _apply_status(table, target)
            await session.flush()
            if previous == TableStatus.OCCUPIED:
                logger.info(f"Table {table.name} left occupied state, order reference cleared")
            return table_to_dict(table, table_floor)

        table = await run_in_transaction(
            self.session_factory, _set, label=f"table {table_number} status"
        )
        return {
            "success": True,
            "message": f"Table {table_number} is now {target.value}",
            "table": table,
        }

    # =========================================================================
    # READS
    # =========================================================================

    async def list_tables(
        self,
        restaurant_id: str,
        status: Optional[str] = None,
        floor: Optional[str] = None,
    ) -> dict[str, Any]:
        """All tables with a per-status count of the ones returned."""
        stmt = (
            select(RestaurantTable, Floor)
            .join(Floor, Floor.id == RestaurantTable.floor_id)
            .where(
                RestaurantTable.restaurant_id == restaurant_id,
                Floor.restaurant_id == restaurant_id,
            )
            .order_by(Floor.position, Floor.name, RestaurantTable.name)
        )
        if floor:
            stmt = stmt.where(func.lower(Floor.name) == floor.strip().lower())
        if status and status != "all":
            stmt = stmt.where(RestaurantTable.status == _parse_status(status))

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        summary = {s.value: 0 for s in TableStatus}
        tables = []
        for table, table_floor in rows:
            summary[table.status.value] += 1
            tables.append(table_to_dict(table, table_floor))

        return {
            "success": True,
            "tables": tables,
            "summary": summary,
            "total": len(tables),
        }

    async def get_table_status(
        self,
        restaurant_id: str,
        table_number: str,
        floor: Optional[str] = None,
    ) -> dict[str, Any]:
        async with self.session_factory() as session:
            table, table_floor = await self.get_table(
                session, restaurant_id, table_number, floor=floor
            )
        return table_to_dict(table, table_floor)
