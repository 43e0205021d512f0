"""
Database Menu Catalog

Reads and edits the menu_items table. Used in staging and production.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select

from dineai.core.exceptions import MenuItemNotFound
from dineai.database import SessionFactory, run_in_transaction, utcnow
from dineai.models import MenuItem
from dineai.services.menu.base import MenuCatalog, MenuEntry

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name",
    "price",
    "category",
    "description",
    "is_veg",
    "spice_level",
    "variants",
    "short_code",
    "is_available",
    "is_deleted",
}


def entry_from_row(item: MenuItem) -> MenuEntry:
    return MenuEntry(
        id=item.id,
        restaurant_id=item.restaurant_id,
        name=item.name,
        price=Decimal(str(item.price)),
        category=item.category,
        description=item.description,
        is_veg=bool(item.is_veg),
        spice_level=item.spice_level,
        variants=list(item.variants or []),
        short_code=item.short_code,
        is_available=bool(item.is_available),
        is_deleted=bool(item.is_deleted),
    )


class DatabaseMenuCatalog(MenuCatalog):
    """SQLAlchemy-backed menu catalog."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    @property
    def provider_name(self) -> str:
        return "database"

    async def list_menu_items(self, restaurant_id: str) -> list[MenuEntry]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(MenuItem)
                .where(MenuItem.restaurant_id == restaurant_id)
                .order_by(MenuItem.category, MenuItem.name)
            )
            return [entry_from_row(item) for item in rows]

    async def get_item(self, restaurant_id: str, item_id: str) -> Optional[MenuEntry]:
        async with self.session_factory() as session:
            item = await session.scalar(
                select(MenuItem).where(
                    MenuItem.restaurant_id == restaurant_id,
                    MenuItem.id == item_id,
                )
            )
            return entry_from_row(item) if item else None

    async def add_item(
        self,
        restaurant_id: str,
        name: str,
        price: Decimal,
        category: Optional[str] = None,
        description: Optional[str] = None,
        is_veg: bool = False,
        spice_level: Optional[str] = None,
        variants: Optional[list[dict[str, Any]]] = None,
        created_by: Optional[str] = None,
    ) -> MenuEntry:
        async def _add(session) -> MenuEntry:
            item = MenuItem(
                restaurant_id=restaurant_id,
                name=name,
                price=price,
                category=category,
                description=description or "",
                is_veg=is_veg,
                spice_level=spice_level,
                variants=list(variants or []),
                is_available=True,
                is_deleted=False,
                created_by=created_by,
            )
            session.add(item)
            await session.flush()
            return entry_from_row(item)

        entry = await run_in_transaction(self.session_factory, _add, label="add menu item")
        logger.info(f"Menu item added: {entry.name} ({restaurant_id})")
        return entry

    async def update_item(
        self,
        restaurant_id: str,
        item_id: str,
        **changes: Any,
    ) -> MenuEntry:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Menu items have no editable field(s): {sorted(unknown)}")

        async def _update(session) -> MenuEntry:
            item = await session.scalar(
                select(MenuItem).where(
                    MenuItem.restaurant_id == restaurant_id,
                    MenuItem.id == item_id,
                )
            )
            if item is None:
                raise MenuItemNotFound("Menu item not found", menu_item_id=item_id)
            for field, value in changes.items():
                setattr(item, field, value)
            item.updated_at = utcnow()
            await session.flush()
            return entry_from_row(item)

        entry = await run_in_transaction(self.session_factory, _update, label="update menu item")
        logger.info(f"Menu item updated: {entry.name} ({', '.join(changes)})")
        return entry
