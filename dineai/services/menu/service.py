"""
Menu Tools

Backs the get_menu, search_menu_items, get_item_availability,
add_menu_item, update_menu_item and toggle_item_availability tools on top
of whichever MenuCatalog is configured.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from dineai.core.config import Settings, get_settings
from dineai.core.exceptions import MenuItemNotFound
from dineai.services.menu.base import MenuCatalog, MenuEntry

logger = logging.getLogger(__name__)


def _matches(entry: MenuEntry, category: Optional[str], is_veg: Optional[bool]) -> bool:
    if entry.is_deleted:
        return False
    if category and (entry.category or "").lower() != category.lower():
        return False
    if is_veg is not None and entry.is_veg != is_veg:
        return False
    return True


class MenuService:
    """Menu reads and edits phrased for the assistant."""

    def __init__(self, catalog: MenuCatalog, settings: Optional[Settings] = None):
        self.catalog = catalog
        self.settings = settings or get_settings()

    def _money(self, amount: Decimal) -> str:
        return f"{self.settings.currency_symbol}{amount:.2f}"

    async def _visible(
        self,
        restaurant_id: str,
        category: Optional[str] = None,
        is_veg: Optional[bool] = None,
    ) -> list[MenuEntry]:
        entries = await self.catalog.list_menu_items(restaurant_id)
        return [e for e in entries if _matches(e, category, is_veg)]

    async def _search(self, restaurant_id: str, search_term: str) -> list[MenuEntry]:
        term = search_term.strip().lower()
        entries = await self._visible(restaurant_id)
        # Exact name first so "Naan" does not resolve to "Garlic Naan"
        exact = [e for e in entries if e.name.lower() == term]
        partial = [
            e for e in entries
            if e not in exact
            and (term in e.name.lower() or term in (e.description or "").lower())
        ]
        return exact + partial

    async def _resolve(
        self,
        restaurant_id: str,
        item_name: Optional[str] = None,
        menu_item_id: Optional[str] = None,
    ) -> MenuEntry:
        if menu_item_id:
            entry = await self.catalog.get_item(restaurant_id, menu_item_id)
            if entry and not entry.is_deleted:
                return entry
        elif item_name:
            matches = await self._search(restaurant_id, item_name)
            if matches:
                return matches[0]
        label = item_name or menu_item_id or ""
        raise MenuItemNotFound(f'Item "{label}" not found on the menu', item_name=label)

    # =========================================================================
    # READS
    # =========================================================================

    async def get_menu(
        self,
        restaurant_id: str,
        category: Optional[str] = None,
        is_veg: Optional[bool] = None,
    ) -> dict[str, Any]:
        entries = await self._visible(restaurant_id, category, is_veg)
        categories = []
        for entry in entries:
            if entry.category and entry.category not in categories:
                categories.append(entry.category)
        return {
            "success": True,
            "items": [e.to_dict() for e in entries],
            "categories": categories,
            "count": len(entries),
        }

    async def search_menu_items(
        self,
        restaurant_id: str,
        search_term: str,
        category: Optional[str] = None,
        is_veg: Optional[bool] = None,
    ) -> dict[str, Any]:
        matches = [
            e for e in await self._search(restaurant_id, search_term)
            if _matches(e, category, is_veg)
        ]
        logger.debug(f'Menu search "{search_term}": {len(matches)} matches')
        return {
            "success": True,
            "items": [e.to_dict() for e in matches],
            "count": len(matches),
        }

    async def get_item_availability(self, restaurant_id: str, item_name: str) -> dict[str, Any]:
        entry = await self._resolve(restaurant_id, item_name=item_name)
        if entry.is_available:
            message = f"{entry.name} is available at {self._money(entry.price)}"
        else:
            message = f"{entry.name} ({self._money(entry.price)}) is currently unavailable"
        return {"success": True, "item": entry.to_dict(), "message": message}

    # =========================================================================
    # EDITS
    # =========================================================================

    async def add_menu_item(
        self,
        restaurant_id: str,
        user_id: str,
        name: str,
        price: Decimal,
        category: str,
        description: Optional[str] = None,
        is_veg: bool = False,
        spice_level: Optional[str] = None,
    ) -> dict[str, Any]:
        entry = await self.catalog.add_item(
            restaurant_id,
            name=name,
            price=price,
            category=category,
            description=description,
            is_veg=is_veg,
            spice_level=spice_level or "medium",
            created_by=user_id,
        )
        return {
            "success": True,
            "message": f'Added "{entry.name}" to menu at {self._money(entry.price)}',
            "item": entry.to_dict(),
        }

    async def update_menu_item(
        self,
        restaurant_id: str,
        item_name: Optional[str] = None,
        menu_item_id: Optional[str] = None,
        new_name: Optional[str] = None,
        new_price: Optional[Decimal] = None,
        new_category: Optional[str] = None,
        description: Optional[str] = None,
        is_available: Optional[bool] = None,
    ) -> dict[str, Any]:
        entry = await self._resolve(restaurant_id, item_name=item_name, menu_item_id=menu_item_id)

        changes: dict[str, Any] = {}
        if new_name:
            changes["name"] = new_name
        if new_price is not None:
            changes["price"] = new_price
        if new_category:
            changes["category"] = new_category
        if description is not None:
            changes["description"] = description
        if is_available is not None:
            changes["is_available"] = is_available

        updated = await self.catalog.update_item(restaurant_id, entry.id, **changes) if changes else entry
        return {
            "success": True,
            "message": f'Updated "{entry.name}" successfully',
            "item": updated.to_dict(),
        }

    async def toggle_item_availability(
        self,
        restaurant_id: str,
        item_name: str,
        is_available: bool,
    ) -> dict[str, Any]:
        entry = await self._resolve(restaurant_id, item_name=item_name)
        updated = await self.catalog.set_availability(restaurant_id, entry.id, is_available)
        state = "available" if is_available else "unavailable"
        return {
            "success": True,
            "message": f"{updated.name} is now {state}",
            "item": updated.to_dict(),
        }
