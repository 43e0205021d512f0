"""
Permission Gateway

Role-based access control for assistant tool calls. Pure lookups over a
fixed role -> capability table; no I/O, no state.

Roles:
    - owner: everything, 1000 messages/day
    - manager: everything except analytics, 500/day
    - employee: front-of-house work without cancel/billing, 200/day
    - waiter: orders and tables only, no status or billing changes, 150/day
    - cashier: reads plus billing, 150/day

Unknown or empty roles are treated as employee.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "employee"
FALLBACK_DAILY_LIMIT = 100


# =============================================================================
# CAPABILITIES
# =============================================================================

ORDER_CAPABILITIES = (
    "get_orders",
    "get_order_by_id",
    "place_order",
    "update_order",
    "cancel_order",
    "update_order_status",
    "complete_billing",
)
TABLE_CAPABILITIES = (
    "get_tables",
    "get_table_status",
    "reserve_table",
    "update_table_status",
    "get_table_order",
)
MENU_CAPABILITIES = (
    "get_menu",
    "search_menu_items",
    "get_item_availability",
    "add_menu_item",
    "update_menu_item",
    "toggle_item_availability",
)
KNOWLEDGE_CAPABILITIES = ("search_knowledge", "get_restaurant_info")
INVENTORY_CAPABILITIES = ("get_inventory", "update_inventory", "get_inventory_alerts")
ANALYTICS_CAPABILITIES = ("get_today_summary", "get_sales_summary", "get_analytics")
CUSTOMER_CAPABILITIES = (
    "get_customers",
    "get_customer_by_id",
    "add_customer",
    "update_customer",
)

ALL_CAPABILITIES = (
    ORDER_CAPABILITIES
    + TABLE_CAPABILITIES
    + MENU_CAPABILITIES
    + KNOWLEDGE_CAPABILITIES
    + INVENTORY_CAPABILITIES
    + ANALYTICS_CAPABILITIES
    + CUSTOMER_CAPABILITIES
)


@dataclass(frozen=True)
class RolePermissions:
    """
    Capabilities granted to one role.

    Attributes:
        role: Normalized role name
        granted: Capability identifiers this role may invoke
        daily_limit: Conversation messages allowed per user per day
    """
    role: str
    granted: frozenset
    daily_limit: int

    def allows(self, capability: str) -> bool:
        return capability in self.granted

    def as_flags(self) -> dict[str, Any]:
        """Full capability -> bool map, as sent to clients."""
        flags: dict[str, Any] = {c: c in self.granted for c in ALL_CAPABILITIES}
        flags["daily_limit"] = self.daily_limit
        return flags


def _role(name: str, daily_limit: int, denied: Iterable[str] = ()) -> RolePermissions:
    denied = set(denied)
    unknown = denied.difference(ALL_CAPABILITIES)
    if unknown:
        raise ValueError(f"Unknown capabilities for role {name}: {sorted(unknown)}")
    return RolePermissions(
        role=name,
        granted=frozenset(c for c in ALL_CAPABILITIES if c not in denied),
        daily_limit=daily_limit,
    )


ROLE_PERMISSIONS: dict[str, RolePermissions] = {
    "owner": _role("owner", 1000),
    "manager": _role("manager", 500, denied=("get_analytics",)),
    "employee": _role(
        "employee",
        200,
        denied=(
            "cancel_order",
            "complete_billing",
            "add_menu_item",
            "update_menu_item",
            "toggle_item_availability",
            "update_inventory",
            "get_inventory_alerts",
            "get_today_summary",
            "get_sales_summary",
            "get_analytics",
            "update_customer",
        ),
    ),
    "waiter": _role(
        "waiter",
        150,
        denied=(
            "cancel_order",
            "update_order_status",
            "complete_billing",
            "reserve_table",
            "add_menu_item",
            "update_menu_item",
            "toggle_item_availability",
            *INVENTORY_CAPABILITIES,
            *ANALYTICS_CAPABILITIES,
            *CUSTOMER_CAPABILITIES,
        ),
    ),
    "cashier": _role(
        "cashier",
        150,
        denied=(
            "place_order",
            "update_order",
            "cancel_order",
            "update_order_status",
            "reserve_table",
            "update_table_status",
            "add_menu_item",
            "update_menu_item",
            "toggle_item_availability",
            *INVENTORY_CAPABILITIES,
            "get_analytics",
            "add_customer",
            "update_customer",
        ),
    ),
}

# Spoken capability summary, in the order it is read out
_CAPABILITY_PHRASES = (
    ("place_order", "place orders"),
    ("update_order", "modify orders"),
    ("cancel_order", "cancel orders"),
    ("complete_billing", "process payments"),
    ("reserve_table", "make reservations"),
    ("update_table_status", "update table status"),
    ("add_menu_item", "add menu items"),
    ("update_menu_item", "update menu items"),
    ("get_sales_summary", "view sales data"),
    ("get_analytics", "view analytics"),
    ("update_inventory", "manage inventory"),
)


def normalize_role(role: Optional[str]) -> str:
    """Lower-case the role and fall back to employee when it is not known."""
    normalized = (role or DEFAULT_ROLE).strip().lower()
    if normalized not in ROLE_PERMISSIONS:
        return DEFAULT_ROLE
    return normalized


class PermissionGateway:
    """
    Answers "may this role do X?" and "how many messages per day?".

    Every method accepts any string as role; unknown roles silently get the
    employee row.
    """

    def __init__(self, roles: Optional[dict[str, RolePermissions]] = None):
        self._roles = roles or ROLE_PERMISSIONS

    def permissions_for(self, role: Optional[str]) -> RolePermissions:
        normalized = (role or DEFAULT_ROLE).strip().lower()
        return self._roles.get(normalized, self._roles[DEFAULT_ROLE])

    def has(self, role: Optional[str], capability: str) -> bool:
        return self.permissions_for(role).allows(capability)

    def daily_limit(self, role: Optional[str]) -> int:
        return self.permissions_for(role).daily_limit or FALLBACK_DAILY_LIMIT

    def filter_tools(self, all_tools: Iterable[dict], role: Optional[str]) -> list[dict]:
        """
        Keep only the tool definitions the role may call.

        Accepts OpenAI-style entries ({"type": "function", "function":
        {"name": ...}}) as well as flat {"name": ...} entries.
        """
        permissions = self.permissions_for(role)
        allowed = []
        for tool in all_tools:
            function = tool.get("function") or {}
            name = function.get("name") or tool.get("name")
            if name and permissions.allows(name):
                allowed.append(tool)
        return allowed

    def allowed_tools(self, role: Optional[str]) -> list[str]:
        permissions = self.permissions_for(role)
        return [c for c in ALL_CAPABILITIES if permissions.allows(c)]

    def describe_capabilities(self, role: Optional[str]) -> str:
        """Comma separated sentence of what the role can do, for prompts."""
        permissions = self.permissions_for(role)
        return ", ".join(
            phrase for capability, phrase in _CAPABILITY_PHRASES
            if permissions.allows(capability)
        )
