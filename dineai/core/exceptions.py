"""
Domain Errors

Every failure the engines can report is a subclass of DineAIError. Messages
are written to be read aloud by the assistant, so they name the table, the
role or the missing capability instead of internal identifiers.

ToolDispatcher.execute is the only place these are turned into
{"success": False, "error": ...} envelopes.
"""

from typing import Any, Optional


class DineAIError(Exception):
    """Base class for all business and store errors."""

    code = "error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_result(self) -> dict[str, Any]:
        result = {
            "success": False,
            "error": self.message,
            "error_code": self.code,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# DISPATCH
# =============================================================================

class MissingTenant(DineAIError):
    code = "missing_tenant"

    def __init__(self):
        super().__init__("Restaurant ID is required. Please try again.")


class PermissionDenied(DineAIError):
    code = "permission_denied"

    def __init__(self, capability: str, role: str):
        super().__init__(
            f"You don't have permission to {capability.replace('_', ' ')}. "
            f"Your role: {role}",
            capability=capability,
            role=role,
        )


class UnknownTool(DineAIError):
    code = "unknown_tool"

    def __init__(self, tool_name: str):
        super().__init__(f"Unknown function: {tool_name}", tool=tool_name)


class InvalidToolArguments(DineAIError):
    code = "invalid_arguments"


# =============================================================================
# TABLES
# =============================================================================

class TableNotFound(DineAIError):
    code = "table_not_found"

    def __init__(self, table_number: str):
        super().__init__(
            f'Table "{table_number}" not found in this restaurant. '
            f"Please check the table number.",
            table_number=table_number,
        )


_TABLE_STATUS_PHRASES = {
    "occupied": "is currently occupied by another customer",
    "reserved": "is reserved for another customer",
    "cleaning": "is being cleaned",
}


class TableUnavailable(DineAIError):
    code = "table_unavailable"

    def __init__(self, table_number: str, status: str):
        phrase = _TABLE_STATUS_PHRASES.get(
            status, f'has status "{status}" and cannot be used'
        )
        super().__init__(
            f'Table "{table_number}" {phrase}. Please choose another table.',
            table_number=table_number,
            status=status,
        )
        self.status = status


class InvalidTableStatus(DineAIError):
    code = "invalid_table_status"


# =============================================================================
# MENU
# =============================================================================

class ItemNotFound(DineAIError):
    code = "item_not_found"

    def __init__(self, item_name: str, suggestions: Optional[list[str]] = None):
        suggestions = suggestions or []
        hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
        super().__init__(
            f'Menu item "{item_name}" not found.{hint} '
            f"Please check the item name and try again.",
            item_name=item_name,
            suggestions=suggestions,
        )


class ItemUnavailable(DineAIError):
    code = "item_unavailable"

    def __init__(self, item_name: str):
        super().__init__(
            f"{item_name} is currently unavailable. Please choose another item.",
            item_name=item_name,
        )


class MenuItemNotFound(DineAIError):
    code = "menu_item_not_found"


# =============================================================================
# ORDERS
# =============================================================================

class OrderNotFound(DineAIError):
    code = "order_not_found"

    def __init__(self, order_id: Any, message: Optional[str] = None):
        super().__init__(message or f"Order {order_id} not found", order_id=str(order_id))


class OrderClosed(DineAIError):
    code = "order_closed"

    def __init__(self, order_label: Any, status: str):
        super().__init__(
            f"Cannot update order #{order_label} with status: {status}",
            status=status,
        )


class InvalidOrderStatus(DineAIError):
    code = "invalid_order_status"


class InvalidCancellation(DineAIError):
    code = "invalid_cancellation"

    def __init__(self, order_label: Any, status: str):
        super().__init__(
            f"Cannot cancel order #{order_label} with status: {status}",
            status=status,
        )


class AlreadyCompleted(DineAIError):
    code = "already_completed"

    def __init__(self, order_label: Any):
        super().__init__(f"Order #{order_label} is already completed")


class CannotBillCancelled(DineAIError):
    code = "cannot_bill_cancelled"

    def __init__(self, order_label: Any):
        super().__init__(f"Cannot bill order #{order_label} because it was cancelled")


# =============================================================================
# REFERENCE DATA
# =============================================================================

class RestaurantNotFound(DineAIError):
    code = "restaurant_not_found"

    def __init__(self, restaurant_id: str):
        super().__init__("Restaurant not found", restaurant_id=restaurant_id)


class CustomerNotFound(DineAIError):
    code = "customer_not_found"

    def __init__(self, reference: str):
        super().__init__("Customer not found", reference=reference)


# =============================================================================
# CONVERSATIONS
# =============================================================================

class SessionNotFound(DineAIError):
    code = "session_not_found"

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found", session_id=session_id)


# =============================================================================
# STORE
# =============================================================================

class TransientStoreConflict(DineAIError):
    code = "transient_store_conflict"

    def __init__(self, attempts: int):
        super().__init__(
            "The system is busy right now. Please try that again in a moment.",
            attempts=attempts,
        )
