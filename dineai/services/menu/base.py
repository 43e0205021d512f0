"""
Menu Catalog Abstract Base Class

Defines the interface contract for menu catalog implementations.
Both StaticMenuCatalog and DatabaseMenuCatalog implement these methods so
the order engine and the menu tools work the same against either.

The order engine only reads the catalog: it resolves requested lines
against list_menu_items() by case-folded name and copies the price into the
order line, so later catalog edits never change existing orders.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional


@dataclass
class MenuEntry:
    """
    One priced menu item as seen by the catalog consumers.

    Attributes:
        id: Catalog identifier
        restaurant_id: Owning tenant
        name: Display name, unique per tenant ignoring case
        price: Base price
        variants: Named alternatives with their own price
                  ([{"name": "Half", "price": 120.0}, ...])
        is_available: False while the kitchen cannot make it
        is_deleted: Soft-deleted entries are never offered or priced
    """
    id: str
    restaurant_id: str
    name: str
    price: Decimal
    category: Optional[str] = None
    description: Optional[str] = None
    is_veg: bool = False
    spice_level: Optional[str] = None
    variants: list[dict[str, Any]] = field(default_factory=list)
    short_code: Optional[str] = None
    is_available: bool = True
    is_deleted: bool = False

    def variant_price(self, variant_name: Optional[str]) -> Optional[Decimal]:
        """Price of the named variant, None if there is no such variant."""
        if not variant_name:
            return None
        wanted = variant_name.strip().lower()
        for variant in self.variants or []:
            if str(variant.get("name", "")).strip().lower() == wanted:
                return Decimal(str(variant.get("price", 0)))
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "category": self.category,
            "description": self.description,
            "is_veg": self.is_veg,
            "is_available": self.is_available,
            "spice_level": self.spice_level,
            "variants": list(self.variants or []),
            "short_code": self.short_code,
        }


class MenuCatalog(ABC):
    """
    Abstract base class for menu catalogs.

    Implementations:
        - StaticMenuCatalog: In-memory demo menu for development
        - DatabaseMenuCatalog: menu_items table through SQLAlchemy
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the catalog backend name for logging."""
        pass

    @abstractmethod
    async def list_menu_items(self, restaurant_id: str) -> list[MenuEntry]:
        """
        Return every catalog entry of the restaurant, deleted ones included.

        Consumers decide what to do with deleted or unavailable entries.
        """
        pass

    @abstractmethod
    async def get_item(self, restaurant_id: str, item_id: str) -> Optional[MenuEntry]:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    async def update_item(
        self,
        restaurant_id: str,
        item_id: str,
        **changes: Any,
    ) -> MenuEntry:
        """
        Apply column changes to one entry.

        Raises:
            MenuItemNotFound: no such entry for this restaurant
        """
        pass

    async def set_availability(
        self,
        restaurant_id: str,
        item_id: str,
        is_available: bool,
    ) -> MenuEntry:
        return await self.update_item(restaurant_id, item_id, is_available=is_available)
