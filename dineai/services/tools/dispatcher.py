"""
Tool Dispatcher

Single entry point for assistant tool calls. Every call goes through the
same gate, in this order:

    1. tenant present      -> MissingTenant
    2. role may call tool  -> PermissionDenied (before any lookup)
    3. tool is known       -> UnknownTool
    4. arguments validate  -> InvalidToolArguments
    5. handler runs

Handlers raise DineAIError subclasses; execute() converts them (and any
unexpected failure) into a {"success": False, "error": ...} result so the
caller always gets a dictionary back.
"""

import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from dineai.core.exceptions import (
    DineAIError,
    InvalidToolArguments,
    MissingTenant,
    OrderNotFound,
    PermissionDenied,
    UnknownTool,
)
from dineai.models import TableStatus
from dineai.services.knowledge import KnowledgeBase
from dineai.services.menu.service import MenuService
from dineai.services.orders import NO_CHANGE, OrderLifecycleEngine, RequestedLine
from dineai.services.permissions import PermissionGateway
from dineai.services.reporting import ReportingService
from dineai.services.tables import TableStateEngine
from dineai.services.tools import catalog as tc

logger = logging.getLogger(__name__)

Handler = Callable[[Any, str, str], Awaitable[dict[str, Any]]]


def _requested(items: Optional[list[tc.ItemRequest]]) -> Optional[list[RequestedLine]]:
    if items is None:
        return None
    return [
        RequestedLine(name=i.name, quantity=i.quantity, variant=i.variant, notes=i.notes)
        for i in items
    ]


def _describe_validation(tool_name: str, error: ValidationError) -> str:
    problems = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue["loc"]) or "arguments"
        problems.append(f"{location}: {issue['msg']}")
    return f"Invalid arguments for {tool_name}: " + "; ".join(problems)


class ToolDispatcher:
    """
    Routes a named tool call to the engine that implements it.

    The handler table is built once at construction and must cover the
    whole tool catalog.
    """

    def __init__(
        self,
        orders: OrderLifecycleEngine,
        tables: TableStateEngine,
        menu: MenuService,
        reporting: ReportingService,
        knowledge: KnowledgeBase,
        permissions: Optional[PermissionGateway] = None,
    ):
        self.orders = orders
        self.tables = tables
        self.menu = menu
        self.reporting = reporting
        self.knowledge = knowledge
        self.permissions = permissions or PermissionGateway()

        self._handlers: dict[str, Handler] = {
            "get_orders": self._get_orders,
            "get_order_by_id": self._get_order_by_id,
            "place_order": self._place_order,
            "update_order_status": self._update_order_status,
            "cancel_order": self._cancel_order,
            "update_order": self._update_order,
            "complete_billing": self._complete_billing,
            "get_tables": self._get_tables,
            "get_table_status": self._get_table_status,
            "reserve_table": self._reserve_table,
            "update_table_status": self._update_table_status,
            "get_table_order": self._get_table_order,
            "get_menu": self._get_menu,
            "search_menu_items": self._search_menu_items,
            "get_item_availability": self._get_item_availability,
            "add_menu_item": self._add_menu_item,
            "update_menu_item": self._update_menu_item,
            "toggle_item_availability": self._toggle_item_availability,
            "search_knowledge": self._search_knowledge,
            "get_restaurant_info": self._get_restaurant_info,
            "get_today_summary": self._get_today_summary,
            "get_sales_summary": self._get_sales_summary,
            "get_inventory_alerts": self._get_inventory_alerts,
            "get_customers": self._get_customers,
            "get_customer_by_id": self._get_customer_by_id,
        }
        missing = set(tc.TOOLS_BY_NAME) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for tools: {', '.join(sorted(missing))}")

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def tools_for_role(self, role: Optional[str]) -> list[dict[str, Any]]:
        """Tool definitions (OpenAI format) the role is allowed to see."""
        return self.permissions.filter_tools(tc.as_openai_tools(), role)

    async def execute(
        self,
        tool_name: str,
        args: Optional[dict[str, Any]],
        restaurant_id: Optional[str],
        user_id: Optional[str],
        role: Optional[str],
    ) -> dict[str, Any]:
        """
        Run one tool call and return its result dictionary.

        Never raises for business failures; the result carries
        success=False, a spoken-style error and an error_code instead.
        """
        started = time.perf_counter()
        effective_role = self.permissions.permissions_for(role).role
        logger.info(
            f"Tool call: {tool_name} "
            f"(restaurant={restaurant_id}, user={user_id}, role={effective_role})"
        )

        try:
            if not restaurant_id:
                raise MissingTenant()
            if not self.permissions.has(role, tool_name):
                raise PermissionDenied(tool_name, effective_role)

            spec = tc.TOOLS_BY_NAME.get(tool_name)
            handler = self._handlers.get(tool_name)
            if spec is None or handler is None:
                raise UnknownTool(tool_name)

            try:
                parsed = spec.args_model.model_validate(args or {})
            except ValidationError as e:
                raise InvalidToolArguments(
                    _describe_validation(tool_name, e), tool=tool_name
                ) from e

            result = await handler(parsed, restaurant_id, user_id or "unknown")

        except PermissionDenied as e:
            logger.warning(f"Permission denied: {effective_role} tried {tool_name}")
            result = e.to_result()
        except DineAIError as e:
            logger.info(f"Tool {tool_name} refused: [{e.code}] {e.message}")
            result = e.to_result()
        except Exception as e:
            logger.exception(f"Tool {tool_name} failed")
            result = {
                "success": False,
                "error": f"Error executing {tool_name}: {e}",
                "error_code": "internal_error",
            }

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"Tool {tool_name} finished in {elapsed_ms:.1f}ms "
            f"(success={result.get('success')})"
        )
        return result

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def _get_orders(self, args: tc.GetOrdersArgs, restaurant_id: str, user_id: str):
        return await self.orders.list_orders(
            restaurant_id,
            status=args.status,
            table_number=args.table_number,
            limit=args.limit,
        )

    async def _get_order_by_id(self, args: tc.OrderIdArgs, restaurant_id: str, user_id: str):
        return await self.orders.get_order(restaurant_id, args.order_id)

    async def _place_order(self, args: tc.PlaceOrderArgs, restaurant_id: str, user_id: str):
        return await self.orders.place_order(
            restaurant_id,
            user_id,
            _requested(args.items),
            table_number=args.table_number,
            order_type=args.order_type,
            customer_name=args.customer_name,
            customer_phone=args.customer_phone,
            seat_number=args.seat_number,
            room_number=args.room_number,
            notes=args.notes,
            special_instructions=args.special_instructions,
        )

    async def _update_order_status(
        self, args: tc.UpdateOrderStatusArgs, restaurant_id: str, user_id: str
    ):
        return await self.orders.update_order_status(restaurant_id, args.order_id, args.status)

    async def _cancel_order(self, args: tc.OrderIdArgs, restaurant_id: str, user_id: str):
        return await self.orders.cancel_order(restaurant_id, args.order_id)

    async def _update_order(self, args: tc.UpdateOrderArgs, restaurant_id: str, user_id: str):
        # An explicit null table_number takes the order off its table
        table_number = args.table_number if "table_number" in args.model_fields_set else NO_CHANGE
        return await self.orders.update_order(
            restaurant_id,
            user_id,
            args.order_id,
            items=_requested(args.items),
            add_items=_requested(args.add_items),
            table_number=table_number,
            special_instructions=args.special_instructions,
            customer_name=args.customer_name,
            customer_phone=args.customer_phone,
            notes=args.notes,
        )

    async def _complete_billing(
        self, args: tc.CompleteBillingArgs, restaurant_id: str, user_id: str
    ):
        return await self.orders.complete_billing(
            restaurant_id,
            args.order_id,
            args.payment_method,
            discount=Decimal(str(args.discount)),
        )

    # =========================================================================
    # TABLES
    # =========================================================================

    async def _get_tables(self, args: tc.GetTablesArgs, restaurant_id: str, user_id: str):
        return await self.tables.list_tables(restaurant_id, status=args.status, floor=args.floor)

    async def _get_table_status(self, args: tc.TableArgs, restaurant_id: str, user_id: str):
        table = await self.tables.get_table_status(
            restaurant_id, args.table_number, floor=args.floor
        )
        current_order = None
        if table["status"] == TableStatus.OCCUPIED.value:
            try:
                current = await self.orders.get_table_order(restaurant_id, args.table_number)
                current_order = current["order"]
            except OrderNotFound:
                logger.warning(
                    f"Table {args.table_number} is occupied but has no open order"
                )
        return {"success": True, "table": {**table, "current_order": current_order}}

    async def _reserve_table(self, args: tc.ReserveTableArgs, restaurant_id: str, user_id: str):
        return await self.tables.reserve(
            restaurant_id,
            args.table_number,
            args.guests,
            time=args.time,
            customer_name=args.customer_name,
            customer_phone=args.customer_phone,
            floor=args.floor,
        )

    async def _update_table_status(
        self, args: tc.UpdateTableStatusArgs, restaurant_id: str, user_id: str
    ):
        return await self.tables.set_status(
            restaurant_id, args.table_number, args.status, floor=args.floor
        )

    async def _get_table_order(self, args: tc.TableOrderArgs, restaurant_id: str, user_id: str):
        return await self.orders.get_table_order(restaurant_id, args.table_number)

    # =========================================================================
    # MENU
    # =========================================================================

    async def _get_menu(self, args: tc.GetMenuArgs, restaurant_id: str, user_id: str):
        return await self.menu.get_menu(restaurant_id, category=args.category, is_veg=args.is_veg)

    async def _search_menu_items(self, args: tc.SearchMenuArgs, restaurant_id: str, user_id: str):
        return await self.menu.search_menu_items(
            restaurant_id, args.search_term, category=args.category, is_veg=args.is_veg
        )

    async def _get_item_availability(
        self, args: tc.ItemNameArgs, restaurant_id: str, user_id: str
    ):
        return await self.menu.get_item_availability(restaurant_id, args.item_name)

    async def _add_menu_item(self, args: tc.AddMenuItemArgs, restaurant_id: str, user_id: str):
        return await self.menu.add_menu_item(
            restaurant_id,
            user_id,
            name=args.name,
            price=Decimal(str(args.price)),
            category=args.category,
            description=args.description,
            is_veg=args.is_veg,
            spice_level=args.spice_level,
        )

    async def _update_menu_item(
        self, args: tc.UpdateMenuItemArgs, restaurant_id: str, user_id: str
    ):
        return await self.menu.update_menu_item(
            restaurant_id,
            item_name=args.item_name,
            menu_item_id=args.menu_item_id,
            new_name=args.new_name,
            new_price=Decimal(str(args.new_price)) if args.new_price is not None else None,
            new_category=args.new_category,
            description=args.description,
            is_available=args.is_available,
        )

    async def _toggle_item_availability(
        self, args: tc.ToggleAvailabilityArgs, restaurant_id: str, user_id: str
    ):
        return await self.menu.toggle_item_availability(
            restaurant_id, args.item_name, args.is_available
        )

    # =========================================================================
    # KNOWLEDGE, ANALYTICS, CUSTOMERS
    # =========================================================================

    async def _search_knowledge(
        self, args: tc.SearchKnowledgeArgs, restaurant_id: str, user_id: str
    ):
        hits = await self.knowledge.search(restaurant_id, args.query, category=args.category)
        result: dict[str, Any] = {
            "success": True,
            "results": [hit.to_dict() for hit in hits],
            "count": len(hits),
        }
        if not hits:
            result["message"] = f'No knowledge base entries found for "{args.query}"'
        return result

    async def _get_restaurant_info(self, args: tc.NoArgs, restaurant_id: str, user_id: str):
        return await self.reporting.get_restaurant_info(restaurant_id)

    async def _get_today_summary(self, args: tc.NoArgs, restaurant_id: str, user_id: str):
        return await self.reporting.get_today_summary(restaurant_id)

    async def _get_sales_summary(
        self, args: tc.SalesSummaryArgs, restaurant_id: str, user_id: str
    ):
        return await self.reporting.get_sales_summary(
            restaurant_id,
            day=args.day,
            start_date=args.start_date,
            end_date=args.end_date,
        )

    async def _get_inventory_alerts(self, args: tc.NoArgs, restaurant_id: str, user_id: str):
        return await self.reporting.get_inventory_alerts(restaurant_id)

    async def _get_customers(self, args: tc.GetCustomersArgs, restaurant_id: str, user_id: str):
        return await self.reporting.get_customers(
            restaurant_id, search=args.search, limit=args.limit
        )

    async def _get_customer_by_id(
        self, args: tc.GetCustomerArgs, restaurant_id: str, user_id: str
    ):
        return await self.reporting.get_customer_by_id(
            restaurant_id, customer_id=args.customer_id, phone=args.phone
        )
