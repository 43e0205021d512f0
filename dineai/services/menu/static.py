"""
Static Menu Catalog

In-memory catalog used in development mode (ENV_MODE=development) so the
assistant can take orders without a seeded menu_items table.

Behavior:
    - Every restaurant starts from a copy of DEMO_MENU
    - Edits (add/update/toggle) live for the lifetime of the process
"""

import logging
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Any, Optional

from dineai.core.exceptions import MenuItemNotFound
from dineai.services.menu.base import MenuCatalog, MenuEntry

logger = logging.getLogger(__name__)


# name, price, category, is_veg, variants
DEMO_MENU = (
    ("Paneer Tikka", "220.00", "starters", True, []),
    ("Chicken Tikka", "260.00", "starters", False, []),
    ("Veg Spring Roll", "160.00", "starters", True, []),
    ("Paneer Butter Masala", "280.00", "mains", True,
     [{"name": "Half", "price": 160.0}, {"name": "Full", "price": 280.0}]),
    ("Butter Chicken", "320.00", "mains", False,
     [{"name": "Half", "price": 180.0}, {"name": "Full", "price": 320.0}]),
    ("Dal Makhani", "210.00", "mains", True, []),
    ("Veg Biryani", "240.00", "rice", True, []),
    ("Chicken Biryani", "300.00", "rice", False, []),
    ("Butter Naan", "50.00", "breads", True, []),
    ("Garlic Naan", "60.00", "breads", True, []),
    ("Gulab Jamun", "90.00", "desserts", True, []),
    ("Masala Chai", "40.00", "drinks", True, []),
    ("Sweet Lassi", "80.00", "drinks", True, []),
)


def _demo_entries(restaurant_id: str) -> list[MenuEntry]:
    return [
        MenuEntry(
            id=f"demo-{index:03d}",
            restaurant_id=restaurant_id,
            name=name,
            price=Decimal(price),
            category=category,
            is_veg=is_veg,
            variants=list(variants),
        )
        for index, (name, price, category, is_veg, variants) in enumerate(DEMO_MENU, 1)
    ]


class StaticMenuCatalog(MenuCatalog):
    """
    Process-local menu catalog.

    Attributes:
        seed_demo_menu: Give restaurants without entries the demo menu
    """

    def __init__(
        self,
        items: Optional[dict[str, list[MenuEntry]]] = None,
        seed_demo_menu: bool = True,
    ):
        self._items: dict[str, list[MenuEntry]] = {
            restaurant_id: list(entries) for restaurant_id, entries in (items or {}).items()
        }
        self.seed_demo_menu = seed_demo_menu

        logger.info(f"StaticMenuCatalog initialized ({len(self._items)} restaurants preloaded)")

    @property
    def provider_name(self) -> str:
        return "static"

    def _entries(self, restaurant_id: str) -> list[MenuEntry]:
        if restaurant_id not in self._items:
            self._items[restaurant_id] = (
                _demo_entries(restaurant_id) if self.seed_demo_menu else []
            )
        return self._items[restaurant_id]

    async def list_menu_items(self, restaurant_id: str) -> list[MenuEntry]:
        return list(self._entries(restaurant_id))

    async def get_item(self, restaurant_id: str, item_id: str) -> Optional[MenuEntry]:
        for entry in self._entries(restaurant_id):
            if entry.id == item_id:
                return entry
        return None

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
        entry = MenuEntry(
            id=str(uuid.uuid4()),
            restaurant_id=restaurant_id,
            name=name,
            price=Decimal(str(price)),
            category=category,
            description=description or "",
            is_veg=is_veg,
            spice_level=spice_level,
            variants=list(variants or []),
        )
        self._entries(restaurant_id).append(entry)
        return entry

    async def update_item(
        self,
        restaurant_id: str,
        item_id: str,
        **changes: Any,
    ) -> MenuEntry:
        entries = self._entries(restaurant_id)
        for index, entry in enumerate(entries):
            if entry.id == item_id:
                if "price" in changes:
                    changes["price"] = Decimal(str(changes["price"]))
                updated = replace(entry, **changes)
                entries[index] = updated
                return updated
        raise MenuItemNotFound("Menu item not found", menu_item_id=item_id)
