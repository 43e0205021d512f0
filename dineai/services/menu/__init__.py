"""
Menu Catalog Factory

Provides a single entry point for obtaining the menu catalog.

Usage:
    from dineai.services.menu import get_menu_catalog

    catalog = get_menu_catalog()
    entries = await catalog.list_menu_items("R1")

Environment Switching:
    - ENV_MODE=development -> StaticMenuCatalog (demo menu, no database rows needed)
    - ENV_MODE=staging/production -> DatabaseMenuCatalog
    - MENU_CATALOG_BACKEND overrides the mode
"""

import logging
from functools import lru_cache

from dineai.core.config import get_settings
from dineai.database import get_session_maker
from dineai.services.menu.base import MenuCatalog, MenuEntry
from dineai.services.menu.database import DatabaseMenuCatalog
from dineai.services.menu.service import MenuService
from dineai.services.menu.static import StaticMenuCatalog

logger = logging.getLogger(__name__)


@lru_cache()
def get_menu_catalog() -> MenuCatalog:
    """
    Get the configured menu catalog instance.

    The instance is cached so edits made through the static catalog stay
    visible for the lifetime of the process.
    """
    settings = get_settings()

    if settings.use_real_services:
        logger.info(
            f"Menu Catalog: Using DatabaseMenuCatalog ({settings.env_mode.value} mode)"
        )
        return DatabaseMenuCatalog(get_session_maker())

    logger.info("Menu Catalog: Using StaticMenuCatalog (development mode)")
    return StaticMenuCatalog()


def reset_menu_catalog() -> None:
    """Clear the cached catalog so the next call re-reads configuration."""
    get_menu_catalog.cache_clear()
    logger.debug("Menu catalog cache cleared")


__all__ = [
    "get_menu_catalog",
    "reset_menu_catalog",
    "MenuCatalog",
    "MenuEntry",
    "MenuService",
    "DatabaseMenuCatalog",
    "StaticMenuCatalog",
]
