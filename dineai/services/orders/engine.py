"""
Order Lifecycle Engine

Order creation, item changes, status moves, cancellation and billing.

Status workflow:
    pending/confirmed -> preparing -> ready -> completed
    pending/confirmed/preparing -> cancelled

completed and cancelled are terminal: nothing changes an order after that.

Every write that touches both an order and a table (placement, table change,
cancellation, billing) runs in one store transaction, so either both records
change or neither does.
"""

import logging
import secrets
import string
import time
import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dineai.core.config import Settings, get_settings
from dineai.core.exceptions import (
    AlreadyCompleted,
    CannotBillCancelled,
    InvalidCancellation,
    InvalidOrderStatus,
    InvalidToolArguments,
    OrderClosed,
    OrderNotFound,
)
from dineai.database import SessionFactory, as_utc, run_in_transaction, utcnow
from dineai.models import (
    ACTIVE_ORDER_STATUSES,
    CANCELLABLE_ORDER_STATUSES,
    Order,
    OrderStatus,
    OrderType,
    Restaurant,
)
from dineai.services.counters import OrderCounterAllocator
from dineai.services.menu.base import MenuCatalog
from dineai.services.orders.pricing import (
    PricedLine,
    RequestedLine,
    TaxSettings,
    price_lines,
    to_money,
    totals,
)
from dineai.services.tables import TableStateEngine

logger = logging.getLogger(__name__)

# Marks "argument not given" where None means "clear the value"
NO_CHANGE: Any = object()

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number() -> str:
    """ORD-<epoch ms>-<4 random chars>, unique enough for receipts."""
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(4))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def _iso(value) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def _amount(value) -> Optional[float]:
    return float(value) if value is not None else None


def order_to_dict(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_id": order.daily_order_id,
        "order_number": order.order_number,
        "order_date": order.order_date,
        "items": list(order.items or []),
        "subtotal": _amount(order.subtotal),
        "tax_amount": _amount(order.tax_amount),
        "tax_breakdown": list(order.tax_breakdown or []),
        "final_amount": _amount(order.final_amount),
        "discount": _amount(order.discount),
        "final_total": _amount(order.final_total),
        "status": order.status.value,
        "order_type": order.order_type.value,
        "table_number": order.table_number,
        "room_number": order.room_number,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "seat_number": order.seat_number,
        "notes": order.notes,
        "special_instructions": order.special_instructions,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "created_by": order.created_by,
        "source": order.source,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def _same_table(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


class OrderLifecycleEngine:
    """
    Owns every order mutation.

    Collaborators:
        tables: occupancy checks and writes, joined into the order transaction
        counters: daily order numbers, allocated in their own transaction
        catalog: menu prices, read before any write
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        tables: TableStateEngine,
        counters: OrderCounterAllocator,
        catalog: MenuCatalog,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.tables = tables
        self.counters = counters
        self.catalog = catalog
        self.settings = settings or get_settings()

    def _money(self, amount) -> str:
        return f"{self.settings.currency_symbol}{to_money(amount):.2f}"

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def _tax_settings(self, session: AsyncSession, restaurant_id: str) -> TaxSettings:
        restaurant = await session.get(Restaurant, restaurant_id)
        if restaurant is None:
            logger.warning(f"Restaurant {restaurant_id} has no record, pricing without tax")
            return TaxSettings.disabled()
        return TaxSettings.from_dict(restaurant.tax_settings)

    async def _find_order(
        self,
        session: AsyncSession,
        restaurant_id: str,
        order_id: Any,
        for_update: bool = False,
    ) -> Order:
        """
        Resolve an order reference.

        A number is the human-facing daily order id (latest order with that
        number wins); anything else is the internal id.
        """
        reference = str(order_id).strip()
        if reference.isdigit():
            stmt = (
                select(Order)
                .where(
                    Order.restaurant_id == restaurant_id,
                    Order.daily_order_id == int(reference),
                )
                .order_by(Order.order_date.desc(), Order.created_at.desc())
                .limit(1)
            )
        else:
            stmt = select(Order).where(
                Order.restaurant_id == restaurant_id,
                Order.id == reference,
            )
        if for_update:
            stmt = stmt.with_for_update()

        order = await session.scalar(stmt)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def _load(self, restaurant_id: str, order_id: Any) -> Order:
        async with self.session_factory() as session:
            return await self._find_order(session, restaurant_id, order_id)

    # =========================================================================
    # PLACE
    # =========================================================================

    async def place_order(
        self,
        restaurant_id: str,
        user_id: str,
        items: Sequence[RequestedLine],
        table_number: Optional[str] = None,
        order_type: str = OrderType.DINE_IN.value,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        seat_number: Optional[str] = None,
        room_number: Optional[str] = None,
        notes: Optional[str] = None,
        special_instructions: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Create a confirmed order and occupy its table.

        Validation and pricing happen before anything is written. The daily
        order number is allocated next; the order insert and the table
        occupancy then share one transaction, and the occupancy write only
        succeeds if the table is still available at that moment.

        Raises:
            InvalidToolArguments: no items
            TableNotFound / TableUnavailable: bad table
            ItemNotFound / ItemUnavailable: bad line
        """
        if not items:
            raise InvalidToolArguments("No items provided for order")

        table = table_number.strip() if table_number and table_number.strip() else None
        if table:
            await self.tables.validate_available(restaurant_id, table)

        lines = price_lines(items, await self.catalog.list_menu_items(restaurant_id))
        async with self.session_factory() as session:
            tax_settings = await self._tax_settings(session, restaurant_id)
        priced = totals(lines, tax_settings)

        order_date = self.settings.local_today().isoformat()
        daily_order_id = await self.counters.next_order_id(restaurant_id, order_date)
        order_number = generate_order_number()
        internal_id = str(uuid.uuid4())

        async def _create(session: AsyncSession) -> dict[str, Any]:
            order = Order(
                id=internal_id,
                restaurant_id=restaurant_id,
                order_number=order_number,
                order_date=order_date,
                daily_order_id=daily_order_id,
                items=[line.to_dict() for line in lines],
                order_type=OrderType(order_type),
                table_number=table,
                room_number=room_number,
                customer_name=customer_name or "Customer",
                customer_phone=customer_phone,
                seat_number=seat_number,
                notes=notes or "",
                special_instructions=special_instructions,
                subtotal=priced.subtotal,
                tax_amount=priced.tax_amount,
                tax_breakdown=priced.tax_breakdown,
                final_amount=priced.final_amount,
                discount=to_money(0),
                payment_status="hotel-billing" if room_number else "pending",
                status=OrderStatus.CONFIRMED,
                created_by=user_id,
                last_updated_by=user_id,
                source="dineai",
            )
            session.add(order)
            await session.flush()
            if table:
                await self.tables.occupy_by_name(session, restaurant_id, table, order.id)
            return order_to_dict(order)

        try:
            order = await run_in_transaction(
                self.session_factory, _create, label=f"place order #{daily_order_id}"
            )
        except Exception:
            logger.info(
                f"Order #{daily_order_id} ({restaurant_id}, {order_date}) not created, "
                f"number left unused"
            )
            raise

        message = f"Order #{daily_order_id} placed successfully"
        if table:
            message += f" for table {table}"
        if room_number:
            message += f" for room {room_number}"
        summary = ", ".join(f"{line.quantity}x {line.name}" for line in lines)
        message += f". Items: {summary}. Total: {self._money(priced.final_amount)}"
        if special_instructions:
            message += ". Special instructions noted."

        logger.info(
            f"Order #{daily_order_id} placed for {restaurant_id} by {user_id} "
            f"(table={table}, total={priced.final_amount})"
        )
        return {"success": True, "order": order, "message": message}

    # =========================================================================
    # UPDATE
    # =========================================================================

    async def update_order(
        self,
        restaurant_id: str,
        user_id: str,
        order_id: Any,
        items: Optional[Sequence[RequestedLine]] = None,
        add_items: Optional[Sequence[RequestedLine]] = None,
        table_number: Any = NO_CHANGE,
        special_instructions: Optional[str] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Change an open order.

        ``items`` replaces every line, ``add_items`` appends new lines (after
        a replacement when both are given); either way the totals are
        recomputed. ``table_number`` moves the order to another table (None
        or "" takes it off its table). Special instructions are appended to
        the existing ones, never overwritten.

        Raises:
            OrderNotFound, OrderClosed, TableNotFound, TableUnavailable,
            ItemNotFound, ItemUnavailable
        """
        current = await self._load(restaurant_id, order_id)
        if current.status.is_terminal:
            raise OrderClosed(current.daily_order_id, current.status.value)

        replacement: Optional[list[PricedLine]] = None
        additions: list[PricedLine] = []
        if items or add_items:
            entries = await self.catalog.list_menu_items(restaurant_id)
            if items:
                replacement = price_lines(items, entries)
            if add_items:
                additions = price_lines(add_items, entries, added_at=utcnow().isoformat())
        items_changed = replacement is not None or bool(additions)

        new_table: Optional[str] = None
        table_changed = False
        if table_number is not NO_CHANGE:
            new_table = table_number.strip() if table_number and table_number.strip() else None
            table_changed = not _same_table(new_table, current.table_number)
            if table_changed and new_table:
                await self.tables.validate_available(restaurant_id, new_table)

        tax_settings = None
        if items_changed:
            async with self.session_factory() as session:
                tax_settings = await self._tax_settings(session, restaurant_id)

        async def _update(session: AsyncSession) -> dict[str, Any]:
            order = await self._find_order(session, restaurant_id, current.id, for_update=True)
            if order.status.is_terminal:
                raise OrderClosed(order.daily_order_id, order.status.value)

            if items_changed:
                lines = (
                    replacement if replacement is not None
                    else [PricedLine.from_dict(line) for line in order.items or []]
                )
                lines = list(lines) + additions
                priced = totals(lines, tax_settings)
                order.items = [line.to_dict() for line in lines]
                order.subtotal = priced.subtotal
                order.tax_amount = priced.tax_amount
                order.tax_breakdown = priced.tax_breakdown
                order.final_amount = priced.final_amount

            if table_changed:
                if order.table_number:
                    await self.tables.release(
                        session, restaurant_id, order.table_number, order_id=order.id
                    )
                if new_table:
                    await self.tables.occupy_by_name(session, restaurant_id, new_table, order.id)
                order.table_number = new_table

            if special_instructions:
                existing = order.special_instructions
                order.special_instructions = (
                    f"{existing}; {special_instructions}" if existing else special_instructions
                )
            if notes is not None:
                order.notes = notes
            if customer_name:
                order.customer_name = customer_name
            if customer_phone:
                order.customer_phone = customer_phone

            order.last_updated_by = user_id
            order.updated_at = utcnow()
            await session.flush()
            return order_to_dict(order)

        order = await run_in_transaction(
            self.session_factory, _update, label=f"update order #{current.daily_order_id}"
        )

        changes = []
        if items_changed:
            changes.append(
                f"items updated ({len(order['items'])} items, "
                f"{self._money(order['final_amount'])})"
            )
        if table_changed:
            changes.append(f"table changed to {new_table or 'none'}")
        if special_instructions:
            changes.append("special instructions added")
        if notes is not None or customer_name or customer_phone:
            changes.append("details updated")

        label = order["order_id"]
        message = (
            f"Order #{label} updated: {', '.join(changes)}" if changes
            else f"Order #{label} unchanged"
        )
        logger.info(f"{message} (by {user_id})")
        return {"success": True, "order": order, "message": message}

    # =========================================================================
    # STATUS
    # =========================================================================

    async def update_order_status(
        self,
        restaurant_id: str,
        order_id: Any,
        status: str,
    ) -> dict[str, Any]:
        """
        Move an open order to another open status.

        Any open status may follow any other (ready -> pending included).
        Cancelling and completing go through cancel_order and
        complete_billing so the table is released with them.
        """
        try:
            target = OrderStatus(str(status).strip().lower())
        except ValueError:
            raise InvalidOrderStatus(f'"{status}" is not an order status', status=str(status))
        if target == OrderStatus.CANCELLED:
            raise InvalidOrderStatus(
                "To cancel an order, use cancel order instead.", status=target.value
            )
        if target == OrderStatus.COMPLETED:
            raise InvalidOrderStatus(
                "To complete an order, use complete billing instead.", status=target.value
            )

        async def _set(session: AsyncSession) -> dict[str, Any]:
            order = await self._find_order(session, restaurant_id, order_id, for_update=True)
            if order.status.is_terminal:
                raise OrderClosed(order.daily_order_id, order.status.value)
            order.status = target
            order.updated_at = utcnow()
            await session.flush()
            return order_to_dict(order)

        order = await run_in_transaction(self.session_factory, _set, label="order status")
        message = f"Order #{order['order_id']} status updated to {target.value}"
        logger.info(message)
        return {"success": True, "order": order, "message": message}

    async def cancel_order(self, restaurant_id: str, order_id: Any) -> dict[str, Any]:
        """
        Cancel a pending, confirmed or preparing order and free its table.

        Raises:
            AlreadyCompleted: the order was billed
            InvalidCancellation: ready or already cancelled
        """

        async def _cancel(session: AsyncSession) -> dict[str, Any]:
            order = await self._find_order(session, restaurant_id, order_id, for_update=True)
            if order.status == OrderStatus.COMPLETED:
                raise AlreadyCompleted(order.daily_order_id)
            if order.status not in CANCELLABLE_ORDER_STATUSES:
                raise InvalidCancellation(order.daily_order_id, order.status.value)

            now = utcnow()
            order.status = OrderStatus.CANCELLED
            order.cancelled_at = now
            order.updated_at = now
            if order.table_number:
                await self.tables.release(
                    session, restaurant_id, order.table_number, order_id=order.id
                )
            await session.flush()
            return order_to_dict(order)

        order = await run_in_transaction(self.session_factory, _cancel, label="cancel order")
        message = f"Order #{order['order_id']} has been cancelled"
        logger.info(f"{message} ({restaurant_id})")
        return {"success": True, "order": order, "message": message}

    async def complete_billing(
        self,
        restaurant_id: str,
        order_id: Any,
        payment_method: str,
        discount: Any = 0,
    ) -> dict[str, Any]:
        """
        Record payment, close the order and free its table.

        final_total = final_amount - discount. The discount is taken as
        given; it is not checked against the order amount.

        Raises:
            AlreadyCompleted, CannotBillCancelled
        """
        discount = to_money(discount or 0)

        async def _bill(session: AsyncSession) -> dict[str, Any]:
            order = await self._find_order(session, restaurant_id, order_id, for_update=True)
            if order.status == OrderStatus.COMPLETED:
                raise AlreadyCompleted(order.daily_order_id)
            if order.status == OrderStatus.CANCELLED:
                raise CannotBillCancelled(order.daily_order_id)

            now = utcnow()
            order.discount = discount
            order.final_total = to_money(order.final_amount) - discount
            order.payment_method = payment_method
            order.payment_status = "completed"
            order.status = OrderStatus.COMPLETED
            order.completed_at = now
            order.updated_at = now
            if order.table_number:
                await self.tables.release(
                    session, restaurant_id, order.table_number, order_id=order.id
                )
            await session.flush()
            return order_to_dict(order)

        order = await run_in_transaction(self.session_factory, _bill, label="complete billing")

        message = f"Order #{order['order_id']} billing completed. Payment: {payment_method}. "
        if discount > 0:
            message += f"Discount: {self._money(discount)}. "
        message += f"Final Total: {self._money(order['final_total'])}"
        logger.info(message)
        return {"success": True, "order": order, "message": message}

    # =========================================================================
    # READS
    # =========================================================================

    async def get_order(self, restaurant_id: str, order_id: Any) -> dict[str, Any]:
        order = await self._load(restaurant_id, order_id)
        return {"success": True, "order": order_to_dict(order)}

    async def list_orders(
        self,
        restaurant_id: str,
        status: Optional[str] = None,
        table_number: Optional[str] = None,
        limit: int = 10,
    ) -> dict[str, Any]:
        stmt = select(Order).where(Order.restaurant_id == restaurant_id)
        if status and status != "all":
            try:
                stmt = stmt.where(Order.status == OrderStatus(status))
            except ValueError:
                raise InvalidOrderStatus(f'"{status}" is not an order status', status=status)
        if table_number:
            stmt = stmt.where(func.lower(Order.table_number) == table_number.strip().lower())
        stmt = stmt.order_by(Order.created_at.desc()).limit(limit)

        async with self.session_factory() as session:
            orders = [order_to_dict(o) for o in await session.scalars(stmt)]
        return {"success": True, "orders": orders, "count": len(orders)}

    async def get_table_order(self, restaurant_id: str, table_number: str) -> dict[str, Any]:
        """Latest open order on a table."""
        async with self.session_factory() as session:
            order = await session.scalar(
                select(Order)
                .where(
                    Order.restaurant_id == restaurant_id,
                    func.lower(Order.table_number) == table_number.strip().lower(),
                    Order.status.in_(ACTIVE_ORDER_STATUSES),
                )
                .order_by(Order.created_at.desc())
                .limit(1)
            )
        if order is None:
            raise OrderNotFound(
                table_number, message=f"No active order for table {table_number}"
            )
        return {"success": True, "order": order_to_dict(order)}
