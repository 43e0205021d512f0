"""
Tool Catalog

The fixed, versioned list of operations the assistant may call. Each tool
has a pydantic model for its arguments; the same model validates incoming
calls in the dispatcher and renders the JSON-schema parameters offered to
the language model.

Bump TOOL_CATALOG_VERSION whenever a tool is added, removed or changes its
arguments.
"""

from dataclasses import dataclass
from datetime import date
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)

TOOL_CATALOG_VERSION = "1.2.0"


def _as_text(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


# Order and table references arrive as numbers or strings depending on the model
OrderRef = Annotated[str, BeforeValidator(_as_text)]
TableRef = Annotated[str, BeforeValidator(_as_text)]

OrderStatusName = Literal["pending", "confirmed", "preparing", "ready", "completed", "cancelled"]
TableStatusName = Literal["available", "occupied", "reserved", "cleaning"]


class ToolArgs(BaseModel):
    """Base for tool arguments: unknown keys from the model are ignored."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# ORDERS
# =============================================================================

class ItemRequest(ToolArgs):
    name: str = Field(..., min_length=1, description="Menu item name")
    quantity: int = Field(default=1, ge=1, le=99, description="Quantity to order")
    variant: Optional[str] = Field(None, description="Variant name, e.g. Half or Full")
    notes: Optional[str] = Field(None, description="Special notes for this item")

    @model_validator(mode="before")
    @classmethod
    def accept_selected_variant(cls, data: Any) -> Any:
        # Older prompts send {"selectedVariant": {"name": "Half"}}
        if isinstance(data, dict) and not data.get("variant"):
            selected = data.get("selectedVariant") or data.get("selected_variant")
            if isinstance(selected, dict) and selected.get("name"):
                data = {**data, "variant": selected["name"]}
        return data


class GetOrdersArgs(ToolArgs):
    status: Optional[Literal[OrderStatusName, "all"]] = Field(
        None, description='Filter orders by status. Use "all" to get all orders.'
    )
    table_number: Optional[TableRef] = Field(None, description="Filter orders by table number")
    limit: int = Field(default=10, ge=1, le=100, description="Maximum number of orders to return")


class OrderIdArgs(ToolArgs):
    order_id: OrderRef = Field(..., description="The order number or order ID")


class PlaceOrderArgs(ToolArgs):
    items: list[ItemRequest] = Field(..., description="Items to order")
    table_number: Optional[TableRef] = Field(
        None, description="Table number for dine-in orders; must exist and be available"
    )
    room_number: Optional[str] = Field(None, description="Hotel room number for room service")
    order_type: Literal["dine-in", "takeaway", "delivery", "room-service"] = Field(
        default="dine-in", description="Type of order"
    )
    customer_name: Optional[str] = Field(None, description="Customer name")
    customer_phone: Optional[str] = Field(None, description="Customer phone number")
    notes: Optional[str] = Field(None, description="General order notes")
    special_instructions: Optional[str] = Field(
        None, description="Special instructions for the kitchen"
    )
    seat_number: Optional[str] = Field(None, description="Seat number for the customer")


class UpdateOrderStatusArgs(OrderIdArgs):
    status: OrderStatusName = Field(..., description="New status for the order")


class UpdateOrderArgs(OrderIdArgs):
    items: Optional[list[ItemRequest]] = Field(
        None, description="Full new list of items (replaces existing items)"
    )
    add_items: Optional[list[ItemRequest]] = Field(
        None, description="Items to append to the existing order"
    )
    table_number: Optional[TableRef] = Field(
        None, description="Move the order to this table; empty to take it off its table"
    )
    special_instructions: Optional[str] = Field(
        None, description="Kitchen instructions, added to the existing ones"
    )
    customer_name: Optional[str] = Field(None, description="Customer name")
    customer_phone: Optional[str] = Field(None, description="Customer phone")
    notes: Optional[str] = Field(None, description="General order notes")


class CompleteBillingArgs(OrderIdArgs):
    payment_method: Literal["cash", "card", "upi", "online"] = Field(
        ..., description="Payment method"
    )
    discount: float = Field(default=0, allow_inf_nan=False, description="Discount amount")


# =============================================================================
# TABLES
# =============================================================================

class GetTablesArgs(ToolArgs):
    status: Optional[Literal[TableStatusName, "all"]] = Field(
        None, description="Filter tables by status"
    )
    floor: Optional[str] = Field(None, description="Filter by floor name")


class TableArgs(ToolArgs):
    table_number: TableRef = Field(..., description="The table number")
    floor: Optional[str] = Field(None, description="Floor name, when table numbers repeat")


class ReserveTableArgs(TableArgs):
    guests: int = Field(..., ge=1, le=100, description="Number of guests")
    time: Optional[str] = Field(None, description="Reservation time (HH:MM)")
    customer_name: Optional[str] = Field(None, description="Customer name")
    customer_phone: Optional[str] = Field(None, description="Customer phone")


class UpdateTableStatusArgs(TableArgs):
    status: TableStatusName = Field(..., description="New status")


class TableOrderArgs(ToolArgs):
    table_number: TableRef = Field(..., description="Table number")


# =============================================================================
# MENU
# =============================================================================

class GetMenuArgs(ToolArgs):
    category: Optional[str] = Field(None, description="Filter by category")
    is_veg: Optional[bool] = Field(None, description="Only vegetarian (true) or non-veg (false)")


class SearchMenuArgs(GetMenuArgs):
    search_term: str = Field(..., min_length=1, description="Search term")


class ItemNameArgs(ToolArgs):
    item_name: str = Field(..., min_length=1, description="Menu item name")


class AddMenuItemArgs(ToolArgs):
    name: str = Field(..., min_length=1, description="Item name")
    price: float = Field(..., gt=0, allow_inf_nan=False, description="Item price")
    category: str = Field(..., min_length=1, description="Category name")
    description: Optional[str] = Field(None, description="Item description")
    is_veg: bool = Field(default=False, description="Is vegetarian")
    spice_level: Optional[Literal["mild", "medium", "hot", "extra-hot"]] = Field(
        None, description="Spice level"
    )


class UpdateMenuItemArgs(ToolArgs):
    item_name: Optional[str] = Field(None, description="Current item name to find")
    menu_item_id: Optional[str] = Field(None, description="Menu item ID (preferred)")
    new_name: Optional[str] = Field(None, description="New name")
    new_price: Optional[float] = Field(None, gt=0, allow_inf_nan=False, description="New price")
    new_category: Optional[str] = Field(None, description="New category")
    description: Optional[str] = Field(None, description="New description")
    is_available: Optional[bool] = Field(None, description="Availability status")

    @model_validator(mode="after")
    def require_target(self) -> "UpdateMenuItemArgs":
        if not self.item_name and not self.menu_item_id:
            raise ValueError("item_name or menu_item_id is required")
        return self


class ToggleAvailabilityArgs(ItemNameArgs):
    is_available: bool = Field(..., description="Availability status")


# =============================================================================
# KNOWLEDGE, ANALYTICS, CUSTOMERS
# =============================================================================

class NoArgs(ToolArgs):
    pass


class SearchKnowledgeArgs(ToolArgs):
    query: str = Field(..., min_length=1, description="Search query")
    category: Optional[Literal["faq", "policy", "menu", "procedure", "general"]] = Field(
        None, description="Filter by category"
    )


class SalesSummaryArgs(ToolArgs):
    day: Optional[date] = Field(None, alias="date", description="Date in YYYY-MM-DD format")
    start_date: Optional[date] = Field(None, description="Start date for range")
    end_date: Optional[date] = Field(None, description="End date for range")

    @model_validator(mode="after")
    def check_range(self) -> "SalesSummaryArgs":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class GetCustomersArgs(ToolArgs):
    search: Optional[str] = Field(None, description="Search by name or phone")
    limit: int = Field(default=20, ge=1, le=100, description="Maximum results")


class GetCustomerArgs(ToolArgs):
    customer_id: Optional[str] = Field(None, description="Customer ID")
    phone: Optional[str] = Field(None, description="Customer phone number")


# =============================================================================
# CATALOG
# =============================================================================

@dataclass(frozen=True)
class ToolSpec:
    """One callable tool. The tool name doubles as its capability name."""
    name: str
    description: str
    args_model: type[ToolArgs]

    @property
    def capability(self) -> str:
        return self.name

    def parameters_schema(self) -> dict[str, Any]:
        return _clean_schema(self.args_model.model_json_schema(by_alias=True))

    def as_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }


TOOL_CATALOG: tuple[ToolSpec, ...] = (
    # Order Management
    ToolSpec(
        "get_orders",
        "Get list of orders filtered by status or table. Returns order number, "
        "items, total, status and time.",
        GetOrdersArgs,
    ),
    ToolSpec("get_order_by_id", "Get a specific order by its number or ID.", OrderIdArgs),
    ToolSpec(
        "place_order",
        "Place an order to the kitchen. Prices the items, applies tax and marks "
        "the table occupied. The table must exist and be available.",
        PlaceOrderArgs,
    ),
    ToolSpec(
        "update_order_status",
        "Change the status of an open order (pending, confirmed, preparing, ready).",
        UpdateOrderStatusArgs,
    ),
    ToolSpec(
        "cancel_order",
        "Cancel an order. Only pending, confirmed or preparing orders can be cancelled.",
        OrderIdArgs,
    ),
    ToolSpec(
        "update_order",
        "Modify an open order: add or replace items, move it to another table, "
        "add special instructions or customer details.",
        UpdateOrderArgs,
    ),
    ToolSpec(
        "complete_billing",
        "Take payment for an order, complete it and release its table.",
        CompleteBillingArgs,
    ),
    # Table Management
    ToolSpec(
        "get_tables",
        "Get all tables with their status (available, occupied, reserved, cleaning).",
        GetTablesArgs,
    ),
    ToolSpec("get_table_status", "Get detailed status of a specific table.", TableArgs),
    ToolSpec("reserve_table", "Reserve an available table for a party.", ReserveTableArgs),
    ToolSpec(
        "update_table_status",
        "Update the status of a table, e.g. mark it available after cleaning.",
        UpdateTableStatusArgs,
    ),
    ToolSpec("get_table_order", "Get the active order for a specific table.", TableOrderArgs),
    # Menu Operations
    ToolSpec("get_menu", "Get the menu with categories.", GetMenuArgs),
    ToolSpec("search_menu_items", "Search menu items by name or description.", SearchMenuArgs),
    ToolSpec(
        "get_item_availability",
        "Check whether a menu item is available and what it costs.",
        ItemNameArgs,
    ),
    ToolSpec("add_menu_item", "Add a new item to the menu.", AddMenuItemArgs),
    ToolSpec("update_menu_item", "Update an existing menu item.", UpdateMenuItemArgs),
    ToolSpec(
        "toggle_item_availability",
        "Mark a menu item as available or unavailable.",
        ToggleAvailabilityArgs,
    ),
    # Knowledge Base
    ToolSpec(
        "search_knowledge",
        "Search the restaurant knowledge base for policies, procedures and FAQs.",
        SearchKnowledgeArgs,
    ),
    ToolSpec(
        "get_restaurant_info",
        "Get restaurant details, hours, contact information and tax settings.",
        NoArgs,
    ),
    # Analytics
    ToolSpec(
        "get_today_summary",
        "Get today's summary: orders, revenue, popular items, table occupancy.",
        NoArgs,
    ),
    ToolSpec(
        "get_sales_summary",
        "Get sales summary for a specific date or date range.",
        SalesSummaryArgs,
    ),
    # Inventory
    ToolSpec(
        "get_inventory_alerts",
        "Get low stock items and inventory expiring within a week.",
        NoArgs,
    ),
    # Customer Management
    ToolSpec("get_customers", "Get list of customers.", GetCustomersArgs),
    ToolSpec("get_customer_by_id", "Get customer details by ID or phone.", GetCustomerArgs),
)

TOOLS_BY_NAME: dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_CATALOG}


def as_openai_tools() -> list[dict[str, Any]]:
    """The whole catalog in OpenAI function-calling format."""
    return [spec.as_openai_tool() for spec in TOOL_CATALOG]


# =============================================================================
# SCHEMA RENDERING
# =============================================================================

def _clean_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten a pydantic JSON schema into the plain shape function calling
    expects: nested models inlined, Optional[X] rendered as X, no titles.
    """
    definitions = schema.get("$defs", {})

    def resolve(node: Any) -> Any:
        if isinstance(node, list):
            return [resolve(item) for item in node]
        if not isinstance(node, dict):
            return node

        if "$ref" in node:
            target = definitions[node["$ref"].split("/")[-1]]
            merged = {**target, **{k: v for k, v in node.items() if k != "$ref"}}
            return resolve(merged)

        if "anyOf" in node:
            branches = [b for b in node["anyOf"] if b.get("type") != "null"]
            if len(branches) == 1:
                rest = {k: v for k, v in node.items() if k != "anyOf"}
                return resolve({**branches[0], **rest})

        return {
            key: resolve(value)
            for key, value in node.items()
            if key not in ("title", "$defs")
        }

    cleaned = resolve(schema)
    cleaned.setdefault("properties", {})
    cleaned["type"] = "object"
    return cleaned
