"""
Order Pricing

Turns requested lines into priced order lines and computes tax.

Money is Decimal quantized to 2 places with ROUND_HALF_UP. Each tax
component is rounded on its own before the components are summed, and the
final amount is always subtotal + tax.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from dineai.core.exceptions import ItemNotFound, ItemUnavailable
from dineai.services.menu.base import MenuEntry

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MAX_SUGGESTIONS = 3


def to_money(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# =============================================================================
# TAX
# =============================================================================

@dataclass
class TaxComponent:
    name: str
    rate: Decimal  # percent
    enabled: bool = True


@dataclass
class TaxSettings:
    """
    Restaurant tax configuration.

    When ``taxes`` is non-empty only its enabled components apply; otherwise
    ``default_tax_rate`` applies as a single component named "Tax".
    """
    enabled: bool = False
    taxes: list[TaxComponent] = field(default_factory=list)
    default_tax_rate: Optional[Decimal] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "TaxSettings":
        """Build from the restaurant's tax_settings JSON (snake or camel case keys)."""
        if not data:
            return cls()
        default_rate = data.get("default_tax_rate", data.get("defaultTaxRate"))
        return cls(
            enabled=bool(data.get("enabled", False)),
            taxes=[
                TaxComponent(
                    name=tax.get("name") or "Tax",
                    rate=Decimal(str(tax.get("rate") or 0)),
                    enabled=bool(tax.get("enabled", False)),
                )
                for tax in data.get("taxes") or []
            ],
            default_tax_rate=Decimal(str(default_rate)) if default_rate else None,
        )

    @classmethod
    def disabled(cls) -> "TaxSettings":
        return cls(enabled=False)


def compute_tax(subtotal: Decimal, settings: TaxSettings) -> tuple[Decimal, list[dict[str, Any]]]:
    """
    Tax owed on ``subtotal``.

    Returns:
        (tax_amount, breakdown) where breakdown is
        [{"name": str, "rate": float, "amount": float}, ...]
    """
    subtotal = to_money(subtotal)
    if not settings.enabled or subtotal <= 0:
        return ZERO, []

    if settings.taxes:
        components = [t for t in settings.taxes if t.enabled]
    elif settings.default_tax_rate:
        components = [TaxComponent(name="Tax", rate=settings.default_tax_rate)]
    else:
        components = []

    total = ZERO
    breakdown = []
    for component in components:
        amount = to_money(subtotal * component.rate / Decimal(100))
        total += amount
        breakdown.append({
            "name": component.name,
            "rate": float(component.rate),
            "amount": float(amount),
        })
    return to_money(total), breakdown


# =============================================================================
# LINES
# =============================================================================

@dataclass
class RequestedLine:
    """One line as asked for by the caller, before it is priced."""
    name: str
    quantity: int = 1
    variant: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PricedLine:
    """
    An order line with its price captured at order time.

    Stored on the order as a plain dict (see to_dict), so later menu price
    changes never touch existing orders.
    """
    menu_item_id: str
    name: str
    unit_price: Decimal
    quantity: int
    variant: Optional[dict[str, Any]] = None
    notes: str = ""
    short_code: Optional[str] = None
    is_new: bool = False
    added_at: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_dict(self) -> dict[str, Any]:
        line = {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "unit_price": float(self.unit_price),
            "quantity": self.quantity,
            "line_total": float(self.line_total),
            "variant": self.variant,
            "notes": self.notes,
            "short_code": self.short_code,
        }
        if self.is_new:
            line["is_new"] = True
            line["added_at"] = self.added_at
        return line

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PricedLine":
        return cls(
            menu_item_id=data.get("menu_item_id", ""),
            name=data["name"],
            unit_price=to_money(data.get("unit_price")),
            quantity=int(data.get("quantity", 1)),
            variant=data.get("variant"),
            notes=data.get("notes") or "",
            short_code=data.get("short_code"),
            is_new=bool(data.get("is_new", False)),
            added_at=data.get("added_at"),
        )


def _suggestions(requested: str, catalog: dict[str, MenuEntry]) -> list[str]:
    words = requested.strip().lower().split()
    if not words:
        return []
    first_word = words[0]
    return [
        entry.name for key, entry in catalog.items() if first_word in key
    ][:MAX_SUGGESTIONS]


def price_lines(
    requested: Iterable[RequestedLine],
    entries: Iterable[MenuEntry],
    added_at: Optional[str] = None,
) -> list[PricedLine]:
    """
    Resolve requested lines against the catalog by case-folded name.

    A named variant's price wins over the base price when the entry has that
    variant. Deleted entries are invisible. Lines are flagged as new when
    ``added_at`` is given (items added to an existing order).

    Raises:
        ItemNotFound: no entry with that name (with up to 3 suggestions)
        ItemUnavailable: the entry is switched off
    """
    catalog = {
        entry.name.strip().lower(): entry
        for entry in entries
        if not entry.is_deleted
    }

    priced = []
    for line in requested:
        entry = catalog.get(line.name.strip().lower())
        if entry is None:
            raise ItemNotFound(line.name, _suggestions(line.name, catalog))
        if not entry.is_available:
            raise ItemUnavailable(entry.name)

        unit_price = entry.price
        variant = None
        variant_price = entry.variant_price(line.variant)
        if variant_price is not None:
            unit_price = variant_price
            variant = {"name": line.variant, "price": float(to_money(variant_price))}

        priced.append(PricedLine(
            menu_item_id=entry.id,
            name=entry.name,
            unit_price=to_money(unit_price),
            quantity=line.quantity,
            variant=variant,
            notes=line.notes or "",
            short_code=entry.short_code,
            is_new=added_at is not None,
            added_at=added_at,
        ))
    return priced


# =============================================================================
# TOTALS
# =============================================================================

@dataclass
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    tax_breakdown: list[dict[str, Any]]
    final_amount: Decimal


def totals(lines: Iterable[PricedLine], tax_settings: TaxSettings) -> Totals:
    """Subtotal, tax and final amount for a set of lines."""
    subtotal = to_money(sum((line.line_total for line in lines), ZERO))
    tax_amount, breakdown = compute_tax(subtotal, tax_settings)
    return Totals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        tax_breakdown=breakdown,
        final_amount=to_money(subtotal + tax_amount),
    )
