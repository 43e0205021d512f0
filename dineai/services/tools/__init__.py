"""
Tool Dispatcher Factory

Usage:
    from dineai.services.tools import get_dispatcher

    dispatcher = get_dispatcher()
    result = await dispatcher.execute("get_tables", {}, "R1", "u1", "waiter")

Environment Switching:
    - MENU_CATALOG_BACKEND / ENV_MODE pick the menu catalog (see
      dineai.services.menu)
    - Everything else runs against the configured database

Tests build their own dispatcher with build_dispatcher() against a
throwaway database.
"""

import logging
from functools import lru_cache
from typing import Optional

from dineai.core.config import Settings, get_settings
from dineai.database import SessionFactory, get_session_maker
from dineai.services.counters import OrderCounterAllocator
from dineai.services.knowledge import KnowledgeBase, get_knowledge_base
from dineai.services.menu import MenuCatalog, get_menu_catalog
from dineai.services.menu.service import MenuService
from dineai.services.orders import OrderLifecycleEngine
from dineai.services.permissions import PermissionGateway
from dineai.services.reporting import ReportingService
from dineai.services.tables import TableStateEngine
from dineai.services.tools.catalog import (
    TOOL_CATALOG,
    TOOL_CATALOG_VERSION,
    ToolSpec,
    as_openai_tools,
)
from dineai.services.tools.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)


def build_dispatcher(
    session_factory: SessionFactory,
    catalog: MenuCatalog,
    knowledge: Optional[KnowledgeBase] = None,
    permissions: Optional[PermissionGateway] = None,
    settings: Optional[Settings] = None,
) -> ToolDispatcher:
    """Wire the engines together around one session factory."""
    settings = settings or get_settings()
    tables = TableStateEngine(session_factory)
    counters = OrderCounterAllocator(session_factory, settings)
    orders = OrderLifecycleEngine(session_factory, tables, counters, catalog, settings)
    return ToolDispatcher(
        orders=orders,
        tables=tables,
        menu=MenuService(catalog, settings),
        reporting=ReportingService(session_factory, tables, settings),
        knowledge=knowledge or get_knowledge_base(),
        permissions=permissions,
    )


@lru_cache()
def get_dispatcher() -> ToolDispatcher:
    logger.info(f"Tool Dispatcher: catalog v{TOOL_CATALOG_VERSION} ({len(TOOL_CATALOG)} tools)")
    return build_dispatcher(get_session_maker(), get_menu_catalog())


def reset_dispatcher() -> None:
    """Reset the cached dispatcher (useful for testing)."""
    get_dispatcher.cache_clear()


__all__ = [
    "build_dispatcher",
    "get_dispatcher",
    "reset_dispatcher",
    "ToolDispatcher",
    "ToolSpec",
    "TOOL_CATALOG",
    "TOOL_CATALOG_VERSION",
    "as_openai_tools",
]
