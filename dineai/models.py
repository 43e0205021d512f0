"""
SQLAlchemy Database Models

Persisted state of the assistant backbone:
- Orders and the per-day order counter
- Floors and tables with their occupancy state
- Menu catalog entries
- Conversation sessions and their message log
- Read-mostly inventory and customer records

Every tenant-owned table carries an indexed restaurant_id and every query
filters on it.
"""

import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from dineai.database import Base, utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


def _enum_column(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=_enum_values,
        validate_strings=True,
    )


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


ACTIVE_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
)
CANCELLABLE_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
)


class OrderType(str, enum.Enum):
    """Where the order is served."""
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"
    ROOM_SERVICE = "room-service"


class TableStatus(str, enum.Enum):
    """Table occupancy states."""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class Restaurant(Base):
    """
    Tenant record.

    tax_settings shape:
        {"enabled": bool,
         "taxes": [{"name": str, "rate": percent, "enabled": bool}, ...],
         "default_tax_rate": percent}
    """
    __tablename__ = "restaurants"

    id = Column(String(64), primary_key=True)
    name = Column(String(150), nullable=False)
    address = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    hours = Column(String(255), nullable=True)
    cuisine = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    tax_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Restaurant {self.id} - {self.name}>"


class Floor(Base):
    """A dining area grouping tables (Main Floor, Terrace, ...)."""
    __tablename__ = "floors"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False, default="Main Floor")
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Floor {self.name} ({self.restaurant_id})>"


class RestaurantTable(Base):
    """
    A physical table.

    current_order_id is a weak reference to Order.id: it is set exactly
    while status is 'occupied'.
    """
    __tablename__ = "restaurant_tables"
    __table_args__ = (
        Index("ix_restaurant_tables_tenant_name", "restaurant_id", "name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)
    floor_id = Column(String(36), ForeignKey("floors.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    capacity = Column(Integer, nullable=False, default=4)
    status = Column(
        _enum_column(TableStatus, "table_status"),
        default=TableStatus.AVAILABLE,
        nullable=False,
        index=True,
    )

    # Occupancy
    current_order_id = Column(String(36), nullable=True)
    last_order_time = Column(DateTime(timezone=True), nullable=True)

    # Reservation
    reserved_by = Column(String(100), nullable=True)
    reserved_phone = Column(String(30), nullable=True)
    reserved_guests = Column(Integer, nullable=True)
    reserved_time = Column(String(20), nullable=True)
    reserved_at = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Table {self.name} - {self.status.value}>"


class MenuItem(Base):
    """
    Priced catalog entry.

    variants: [{"name": "Half", "price": 120.0}, ...]
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        Index("ix_menu_items_tenant_name", "restaurant_id", "name"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    is_veg = Column(Boolean, default=False)
    spice_level = Column(String(20), nullable=True)
    variants = Column(JSON, nullable=True)
    short_code = Column(String(20), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MenuItem {self.name} @ {self.price}>"


class DailyOrderCounter(Base):
    """Last issued daily order number per restaurant and local date."""
    __tablename__ = "daily_order_counters"

    restaurant_id = Column(String(64), primary_key=True)
    order_date = Column(String(10), primary_key=True)  # YYYY-MM-DD
    last_order_id = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Order(Base):
    """
    Main Order table.

    items holds the priced lines captured at order time:
        [{"menu_item_id", "name", "unit_price", "quantity", "line_total",
          "variant", "notes", ...}, ...]
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint(
            "restaurant_id", "order_date", "daily_order_id",
            name="uq_orders_daily_number",
        ),
        Index("ix_orders_tenant_status", "restaurant_id", "status"),
        Index("ix_orders_tenant_table", "restaurant_id", "table_number"),
        Index("ix_orders_tenant_created", "restaurant_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)

    # =========================================================================
    # NUMBERING
    # =========================================================================
    order_number = Column(String(40), nullable=False)
    order_date = Column(String(10), nullable=False)
    daily_order_id = Column(Integer, nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False, default=list)
    order_type = Column(
        _enum_column(OrderType, "order_type"),
        default=OrderType.DINE_IN,
        nullable=False,
    )
    table_number = Column(String(50), nullable=True)
    room_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    special_instructions = Column(Text, nullable=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_phone = Column(String(30), nullable=True)
    seat_number = Column(String(20), nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(10, 2), nullable=False, default=0)
    tax_breakdown = Column(JSON, nullable=True)
    final_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    final_total = Column(Numeric(10, 2), nullable=True)

    # =========================================================================
    # PAYMENT
    # =========================================================================
    payment_method = Column(String(20), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(
        _enum_column(OrderStatus, "order_status"),
        default=OrderStatus.CONFIRMED,
        nullable=False,
    )

    # =========================================================================
    # AUDIT
    # =========================================================================
    created_by = Column(String(64), nullable=True)
    last_updated_by = Column(String(64), nullable=True)
    source = Column(String(20), nullable=False, default="dineai")

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Order #{self.daily_order_id} ({self.order_date}) - {self.status.value}>"


class ConversationSession(Base):
    """
    One voice or text conversation between a staff member and the assistant.

    actions_performed is append-only: [{"action", "params", "success",
    "result", "timestamp"}, ...]
    """
    __tablename__ = "conversation_sessions"
    __table_args__ = (
        Index("ix_sessions_user_tenant_started", "user_id", "restaurant_id", "started_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="employee")
    session_type = Column(String(10), nullable=False, default="voice")
    response_mode = Column(String(10), nullable=False, default="voice")
    status = Column(
        _enum_column(SessionStatus, "session_status"),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    summary = Column(Text, nullable=True)
    message_count = Column(Integer, nullable=False, default=0)
    tokens_used = Column(Integer, nullable=False, default=0)
    actions_performed = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ConversationSession {self.id} - {self.status.value}>"


class ConversationMessage(Base):
    """A single turn inside a conversation session."""
    __tablename__ = "conversation_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String(36),
        ForeignKey("conversation_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String(20), nullable=False)  # user, assistant or tool
    content = Column(Text, nullable=True)
    audio_url = Column(String(500), nullable=True)
    tool_name = Column(String(64), nullable=True)
    tool_result = Column(JSON, nullable=True)
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class InventoryItem(Base):
    """Stock level of an ingredient or supply."""
    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False, default=0)
    unit = Column(String(20), nullable=True)
    reorder_level = Column(Numeric(10, 2), nullable=False, default=10)
    expiry_date = Column(Date, nullable=True)


class Customer(Base):
    """Known guest of a restaurant."""
    __tablename__ = "customers"
    __table_args__ = (
        Index("ix_customers_tenant_phone", "restaurant_id", "phone"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    last_visit = Column(DateTime(timezone=True), nullable=True)
