"""
Order lifecycle: pricing, tax and state transitions.
"""

from dineai.services.orders.engine import (
    NO_CHANGE,
    OrderLifecycleEngine,
    generate_order_number,
    order_to_dict,
)
from dineai.services.orders.pricing import (
    PricedLine,
    RequestedLine,
    TaxComponent,
    TaxSettings,
    Totals,
    compute_tax,
    price_lines,
    to_money,
    totals,
)

__all__ = [
    "NO_CHANGE",
    "OrderLifecycleEngine",
    "generate_order_number",
    "order_to_dict",
    "PricedLine",
    "RequestedLine",
    "TaxComponent",
    "TaxSettings",
    "Totals",
    "compute_tax",
    "price_lines",
    "to_money",
    "totals",
]
