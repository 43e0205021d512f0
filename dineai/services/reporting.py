"""
Reporting Reads

Simple aggregation reads behind the summary, inventory, customer and
restaurant-info tools. Nothing here writes.
"""

import logging
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, or_, select

from dineai.core.config import Settings, get_settings
from dineai.core.exceptions import CustomerNotFound, RestaurantNotFound
from dineai.database import SessionFactory, as_utc
from dineai.models import (
    ACTIVE_ORDER_STATUSES,
    Customer,
    InventoryItem,
    Order,
    OrderStatus,
    Restaurant,
)
from dineai.services.orders.pricing import TaxSettings, to_money
from dineai.services.tables import TableStateEngine

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = Decimal(10)
EXPIRY_WINDOW_DAYS = 7
POPULAR_ITEMS = 5


def _float(value) -> float:
    return float(to_money(value))


class ReportingService:
    """Read-only summaries for one restaurant at a time."""

    def __init__(
        self,
        session_factory: SessionFactory,
        tables: TableStateEngine,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.tables = tables
        self.settings = settings or get_settings()

    async def _orders_between(self, restaurant_id: str, start, end, *conditions) -> list[Order]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(Order).where(
                    Order.restaurant_id == restaurant_id,
                    Order.created_at >= start,
                    Order.created_at < end,
                    *conditions,
                )
            )
            return list(rows)

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    async def get_today_summary(self, restaurant_id: str) -> dict[str, Any]:
        start, end = self.settings.day_bounds(self.settings.local_today())
        orders = await self._orders_between(restaurant_id, start, end)

        revenue = Decimal(0)
        completed = 0
        pending = 0
        item_counts: Counter = Counter()
        for order in orders:
            if order.status == OrderStatus.COMPLETED:
                revenue += order.final_total if order.final_total is not None else order.final_amount
                completed += 1
            elif order.status in ACTIVE_ORDER_STATUSES:
                pending += 1
            for line in order.items or []:
                item_counts[line.get("name")] += int(line.get("quantity", 0))

        tables = await self.tables.list_tables(restaurant_id)
        return {
            "success": True,
            "summary": {
                "total_orders": len(orders),
                "completed_orders": completed,
                "pending_orders": pending,
                "total_revenue": _float(revenue),
                "popular_items": [
                    {"name": name, "count": count}
                    for name, count in item_counts.most_common(POPULAR_ITEMS)
                ],
                "tables": tables["summary"],
            },
        }

    async def get_sales_summary(
        self,
        restaurant_id: str,
        day: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict[str, Any]:
        """Completed-order sales for one day, a date range, or today."""
        if day:
            first, last = day, day
            period = day.isoformat()
        elif start_date and end_date:
            first, last = start_date, end_date
            period = f"{start_date.isoformat()} to {end_date.isoformat()}"
        else:
            first = last = self.settings.local_today()
            period = "today"

        start, _ = self.settings.day_bounds(first)
        _, end = self.settings.day_bounds(last)
        orders = await self._orders_between(
            restaurant_id, start, end, Order.status == OrderStatus.COMPLETED
        )

        revenue = Decimal(0)
        tax = Decimal(0)
        methods: Counter = Counter()
        for order in orders:
            revenue += order.final_total if order.final_total is not None else order.final_amount
            tax += order.tax_amount or 0
            methods[order.payment_method or "cash"] += 1

        count = len(orders)
        return {
            "success": True,
            "sales": {
                "period": period,
                "total_orders": count,
                "total_revenue": _float(revenue),
                "total_tax": _float(tax),
                "average_order_value": _float(revenue / count) if count else 0.0,
                "payment_methods": dict(methods),
            },
        }

    # =========================================================================
    # INVENTORY
    # =========================================================================

    async def get_inventory_alerts(self, restaurant_id: str) -> dict[str, Any]:
        today = self.settings.local_today()
        horizon = today + timedelta(days=EXPIRY_WINDOW_DAYS)

        async with self.session_factory() as session:
            low = list(await session.scalars(
                select(InventoryItem)
                .where(
                    InventoryItem.restaurant_id == restaurant_id,
                    InventoryItem.quantity <= LOW_STOCK_THRESHOLD,
                )
                .order_by(InventoryItem.quantity)
            ))
            expiring = list(await session.scalars(
                select(InventoryItem)
                .where(
                    InventoryItem.restaurant_id == restaurant_id,
                    InventoryItem.expiry_date >= today,
                    InventoryItem.expiry_date <= horizon,
                )
                .order_by(InventoryItem.expiry_date)
            ))

        low_stock = [
            {
                "id": item.id,
                "name": item.name,
                "quantity": float(item.quantity),
                "unit": item.unit,
                "reorder_level": float(item.reorder_level),
            }
            for item in low
        ]
        expiring_soon = [
            {
                "id": item.id,
                "name": item.name,
                "quantity": float(item.quantity),
                "expiry_date": item.expiry_date.isoformat(),
            }
            for item in expiring
        ]
        return {
            "success": True,
            "alerts": {
                "low_stock": low_stock,
                "expiring_soon": expiring_soon,
                "total_alerts": len(low_stock) + len(expiring_soon),
            },
        }

    # =========================================================================
    # CUSTOMERS
    # =========================================================================

    async def get_customers(
        self,
        restaurant_id: str,
        search: Optional[str] = None,
        limit: int = 20,
    ) -> dict[str, Any]:
        stmt = select(Customer).where(Customer.restaurant_id == restaurant_id)
        if search:
            term = search.strip().lower()
            stmt = stmt.where(or_(
                func.lower(Customer.name).contains(term),
                Customer.phone.contains(term),
            ))
        stmt = stmt.order_by(Customer.name).limit(limit)

        async with self.session_factory() as session:
            customers = [
                {
                    "id": c.id,
                    "name": c.name,
                    "phone": c.phone,
                    "email": c.email,
                    "total_orders": c.total_orders or 0,
                    "total_spent": _float(c.total_spent or 0),
                }
                for c in await session.scalars(stmt)
            ]
        return {"success": True, "customers": customers, "count": len(customers)}

    async def get_customer_by_id(
        self,
        restaurant_id: str,
        customer_id: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> dict[str, Any]:
        if not customer_id and not phone:
            raise CustomerNotFound("")

        stmt = select(Customer).where(Customer.restaurant_id == restaurant_id)
        if customer_id:
            stmt = stmt.where(Customer.id == customer_id)
        else:
            stmt = stmt.where(Customer.phone == phone)

        async with self.session_factory() as session:
            customer = await session.scalar(stmt.limit(1))
        if customer is None:
            raise CustomerNotFound(customer_id or phone)

        last_visit = as_utc(customer.last_visit)
        return {
            "success": True,
            "customer": {
                "id": customer.id,
                "name": customer.name,
                "phone": customer.phone,
                "email": customer.email,
                "address": customer.address,
                "total_orders": customer.total_orders or 0,
                "total_spent": _float(customer.total_spent or 0),
                "last_visit": last_visit.isoformat() if last_visit else None,
            },
        }

    # =========================================================================
    # RESTAURANT
    # =========================================================================

    async def get_restaurant_info(self, restaurant_id: str) -> dict[str, Any]:
        async with self.session_factory() as session:
            restaurant = await session.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise RestaurantNotFound(restaurant_id)

        tax = TaxSettings.from_dict(restaurant.tax_settings)
        return {
            "success": True,
            "restaurant": {
                "name": restaurant.name,
                "address": restaurant.address,
                "phone": restaurant.phone,
                "email": restaurant.email,
                "hours": restaurant.hours or "Not specified",
                "cuisine": restaurant.cuisine,
                "description": restaurant.description,
                "tax_settings": {
                    "enabled": tax.enabled,
                    "taxes": [
                        {"name": t.name, "rate": float(t.rate)}
                        for t in tax.taxes if t.enabled
                    ],
                    "default_tax_rate": float(tax.default_tax_rate or 0),
                },
            },
        }
