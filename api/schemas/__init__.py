"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

from models.order import ActorType, OrderStatus, PaymentMethod, PaymentStatus, ShippingMethod
from services.maps import Address


# ── Enums ──────────────────────────────────────────────────

class VehicleType(str, Enum):
    MOTORCYCLE = "motorcycle"
    SEDAN = "sedan"
    MPV = "mpv"
    PICKUP_TRUCK = "pickup_truck"


# ── Delivery Schemas ───────────────────────────────────────

class AddressIn(BaseModel):
    street_address: str = ""
    city: str = ""
    province: str = ""
    zip_code: str = ""
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    class Config:
        frozen = True

    def to_address(self) -> Address:
        return Address(
            street_address=self.street_address,
            city=self.city,
            province=self.province,
            zip_code=self.zip_code,
            lat=self.lat,
            lng=self.lng,
        )


class StoreResponse(BaseModel):
    id: int
    name: str
    lat: float
    lng: float
    city: str
    address: str
    operating_hours: str

    class Config:
        from_attributes = True


class DeliveryQuoteResponse(BaseModel):
    vehicle_type: str
    vehicle_label: str
    description: str
    distance_km: float
    base_fare: int
    distance_charge: int
    zone_multiplier: float
    zone_key: str
    zone_name: str
    total_fare: int
    estimated_minutes: int
    is_pickup: bool
    store: StoreResponse

    class Config:
        from_attributes = True


class DeliveryOptionsResponse(BaseModel):
    quotes: list[DeliveryQuoteResponse]
    recommended: DeliveryQuoteResponse
    pickup_option: DeliveryQuoteResponse
    distance_accurate: bool
    distance_source: str
    currency: str = "PHP"

    class Config:
        from_attributes = True


class ShippingCostResponse(BaseModel):
    cost: int
    vehicle_type: str
    estimated_time: str
    currency: str = "PHP"


# ── Order Schemas ──────────────────────────────────────────

class OrderItemCreate(BaseModel):
    product_id: int
    variation_id: int | None = None
    product_name: str
    variation: str | None = None
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)


class OrderCreate(BaseModel):
    customer_id: str | None = None
    customer_name: str
    customer_email: str = Field(min_length=3, max_length=255)
    customer_phone: str | None = None
    shipping: AddressIn
    shipping_method: ShippingMethod = ShippingMethod.DELIVERY
    vehicle_type: VehicleType | None = None
    payment_method: PaymentMethod = PaymentMethod.COD
    items: list[OrderItemCreate] = Field(min_length=1)
    notes: str | None = None
    idempotency_key: str | None = Field(default=None, max_length=64)


class OrderItemResponse(BaseModel):
    product_id: int
    variation_id: int | None
    product_name: str
    variation: str | None
    quantity: int
    price: float
    total: float

    class Config:
        from_attributes = True


class OrderEventResponse(BaseModel):
    from_status: str | None
    to_status: str
    actor_type: str
    actor_id: str | None
    note: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    version: int
    status: OrderStatus
    customer_name: str
    customer_email: str
    shipping_method: ShippingMethod
    shipping_address: str
    shipping_city: str | None
    shipping_province: str | None
    vehicle_type: str | None
    zone_key: str | None
    distance_km: float | None
    estimated_minutes: int | None
    subtotal: float
    shipping_fee: float
    total_amount: float
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    tracking_number: str | None
    courier_name: str | None
    created_at: datetime
    delivered_at: datetime | None
    cancelled_at: datetime | None
    items: list[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    events: list[OrderEventResponse] = []


class StatusTransitionRequest(BaseModel):
    status: OrderStatus
    actor_type: ActorType = ActorType.STAFF
    actor_id: str | None = None
    expected_version: int | None = None
    note: str | None = None
    tracking_number: str | None = None
    courier_name: str | None = None


class AllowedTransitionsResponse(BaseModel):
    order_number: str
    status: OrderStatus
    version: int
    allowed: list[OrderStatus]


class VerifyReceiptRequest(BaseModel):
    order_number: str | None = None
    verification_code: str | None = None
    email: str | None = None


class VerifyReceiptResponse(BaseModel):
    order_number: str
    status: OrderStatus
    already_verified: bool
    message: str


class AutoCompleteResponse(BaseModel):
    completed: list[str]
    count: int
