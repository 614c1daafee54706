"""Order, OrderItem and OrderEvent ORM models for the checkout-to-completion lifecycle."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON, DateTime, Float, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    ORDERED = "ordered"
    PAID_WAITING_APPROVAL = "paid_waiting_approval"
    COD_WAITING_APPROVAL = "cod_waiting_approval"
    PAID_READY_PICKUP = "paid_ready_pickup"
    PROCESSING = "processing"
    IN_TRANSIT = "in_transit"
    WAITING_CLIENT = "waiting_client"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURN_REQUESTED = "return_requested"
    RETURN_APPROVED = "return_approved"
    RETURNED = "returned"
    REFUND_REQUESTED = "refund_requested"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL = "partial"


class PaymentMethod(str, Enum):
    COD = "cod"
    GCASH = "gcash"
    MAYA = "maya"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    STORE_PAYMENT = "store_payment"


class ShippingMethod(str, Enum):
    DELIVERY = "delivery"
    STORE_PICKUP = "store_pickup"


class ActorType(str, Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    SYSTEM = "SYSTEM"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Customer (identity lives in the auth service)
    customer_id: Mapped[str | None] = mapped_column(String(64), index=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(32))

    # Shipping
    shipping_method: Mapped[str] = mapped_column(String(20), default=ShippingMethod.DELIVERY.value)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    shipping_city: Mapped[str | None] = mapped_column(String(120))
    shipping_province: Mapped[str | None] = mapped_column(String(120))
    shipping_zip: Mapped[str | None] = mapped_column(String(16))
    shipping_lat: Mapped[float | None] = mapped_column(Float)
    shipping_lng: Mapped[float | None] = mapped_column(Float)
    vehicle_type: Mapped[str | None] = mapped_column(String(20))
    zone_key: Mapped[str | None] = mapped_column(String(20))
    distance_km: Mapped[float | None] = mapped_column(Float)
    estimated_minutes: Mapped[int | None] = mapped_column(Integer)

    # Amounts (PHP)
    subtotal: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    shipping_fee: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    total_amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)

    # Status and payment
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.ORDERED.value, index=True)
    payment_method: Mapped[str] = mapped_column(String(20), default=PaymentMethod.COD.value)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value)

    # Set by fulfilment staff
    tracking_number: Mapped[str | None] = mapped_column(String(64))
    courier_name: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text)

    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    status_changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    customer_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Relationships
    items = relationship("OrderItem", back_populates="order", lazy="selectin", cascade="all, delete-orphan")
    events = relationship("OrderEvent", back_populates="order", lazy="selectin", order_by="OrderEvent.id")
    reservations = relationship("StockReservation", back_populates="order", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    variation_id: Mapped[int | None] = mapped_column(Integer)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variation: Mapped[str | None] = mapped_column(String(120))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderEvent(Base):
    __tablename__ = "order_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(32))
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)  # CUSTOMER, STAFF, SYSTEM
    actor_id: Mapped[str | None] = mapped_column(String(64))
    note: Mapped[str | None] = mapped_column(Text)
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    order = relationship("Order", back_populates="events")
