"""
SQLAlchemy Database Models

Storefront schema:
- Catalog (categories, products)
- Customers (profiles, addresses, admin roles)
- Orders with their line items (unit price frozen at checkout)
- Promotions

Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.database import Base


def utc_now() -> datetime:
    """Timezone-aware 'now' used for every stored timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone=True columns;
    those are UTC because every write goes through utc_now().
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class OrderStatus(str, enum.Enum):
    """Fulfillment workflow, in advance order (cancelled is off the line)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# =============================================================================
# CUSTOMERS
# =============================================================================

class Profile(Base):
    """Customer profile. The primary key is the identity provider's user id."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    full_name = Column(String(120), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<Profile {self.id} - {self.full_name}>"


class AdminRole(Base):
    """Grants back-office access to a user."""
    __tablename__ = "admin_roles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, unique=True, index=True)
    role = Column(String(50), nullable=False, default="admin")
    permissions = Column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<AdminRole {self.user_id} - {self.role}>"


class Address(Base):
    """Delivery address. The first address of a user is created as default."""
    __tablename__ = "addresses"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)

    street = Column(String(255), nullable=False)
    number = Column(String(20), nullable=False)
    complement = Column(String(255), nullable=True)
    neighborhood = Column(String(120), nullable=False)
    city = Column(String(120), nullable=False)
    state = Column(String(50), nullable=False)
    zip_code = Column(String(20), nullable=False)

    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<Address {self.id} - {self.street}, {self.number}>"


# =============================================================================
# CATALOG
# =============================================================================

class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Category {self.name}>"


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String(500), nullable=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True, index=True)
    active = Column(Boolean, default=True, nullable=False)

    category = relationship("Category", lazy="selectin")

    def __repr__(self):
        return f"<Product {self.name} - {self.price}>"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Customer order.

    ``version`` is bumped by every status/payment mutation and compared on
    update so concurrent writers cannot silently overwrite each other.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    address_id = Column(String(36), ForeignKey("addresses.id"), nullable=True)

    # =========================================================================
    # PRICING & PAYMENT
    # =========================================================================
    total_amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.PIX.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # =========================================================================
    # FULFILLMENT
    # =========================================================================
    order_status = Column(
        String(30),
        nullable=False,
        default=OrderStatus.PENDING.value,
        index=True,
    )
    notes = Column(Text, nullable=True)
    estimated_delivery_time = Column(Integer, nullable=True)  # minutes
    version = Column(Integer, nullable=False, default=1)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    address = relationship("Address", lazy="selectin")
    customer = relationship(
        "Profile",
        primaryjoin="foreign(Order.user_id) == Profile.id",
        viewonly=True,
        lazy="selectin",
    )
    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        order_by="OrderItem.created_at",
    )

    def __repr__(self):
        return f"<Order #{self.id} - {self.order_status} - {self.total_amount}>"


class OrderItem(Base):
    """Order line. unit_price is the catalog price at checkout and never changes."""
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="selectin")

    def __repr__(self):
        return f"<OrderItem {self.product_id} x{self.quantity} @ {self.unit_price}>"


# =============================================================================
# PROMOTIONS
# =============================================================================

class Promotion(Base):
    """
    Discount rule managed from the back office.

    Business rules (blank usage limit = unlimited, upper-case codes) live
    in the request schemas; the table accepts whatever it is given.
    """
    __tablename__ = "promotions"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False, default=DiscountType.PERCENTAGE.value)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_value = Column(Numeric(10, 2), nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    code = Column(String(50), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<Promotion {self.title} - {self.discount_type} {self.discount_value}>"
