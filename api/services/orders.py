"""
Order service: checkout placement and serialized status changes.

Transitions on one order are serialized twice over: the row is read with
SELECT ... FOR UPDATE, and `orders.version` is the mapper's version
counter, so a write based on a stale read fails with StaleDataError and
surfaces as ConflictingTransition.
"""

import logging
import random
import string
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from models.order import (
    ActorType, Order, OrderEvent, OrderItem, OrderStatus, PaymentStatus,
    ShippingMethod, utcnow,
)
from schemas import OrderCreate
from services.inventory import apply_stock_movements, reserve_stock
from services.lifecycle import (
    DEFAULT_HOOKS, SYSTEM_ACTOR, Actor, ConflictingTransition, InvalidTransition,
    OrderLifecycleManager, TransitionError,
)
from services.notifications import dispatch_order_status
from services.quotes import STORE_PICKUP, build_pickup_option, get_quotes

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "FRG"
VERIFICATION_CODE_PREFIX = "FRAGRANZA|"
VERIFIABLE_STATUSES = frozenset({OrderStatus.DELIVERED.value, OrderStatus.PICKED_UP.value})

# Fields fulfilment staff may set alongside a status signal
OPERATOR_FIELDS = frozenset({"tracking_number", "courier_name", "customer_verified_at"})

lifecycle = OrderLifecycleManager(hooks=(*DEFAULT_HOOKS, apply_stock_movements))


class OrderNotFound(LookupError):
    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Order not found: {ref}")


class CheckoutError(ValueError):
    """Checkout request that cannot become an order."""


def generate_order_number() -> str:
    """Human-readable order number: FRG-YYMMDD-XXXX."""
    date_part = utcnow().strftime("%y%m%d")
    rand_part = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"{ORDER_NUMBER_PREFIX}-{date_part}-{rand_part}"


async def get_order_by_number(
    db: AsyncSession,
    order_number: str,
    for_update: bool = False,
) -> Order | None:
    query = select(Order).where(Order.order_number == order_number)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    status: str | None = None,
    customer_id: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> list[Order]:
    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    if customer_id:
        query = query.where(Order.customer_id == customer_id)
    query = query.order_by(Order.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


# ── Checkout ───────────────────────────────────────────────

async def create_order(db: AsyncSession, data: OrderCreate) -> Order:
    """
    Place an order in status `ordered`.

    The shipping fee is re-quoted server-side for the chosen vehicle; the
    cheapest vehicle is used when none is given. Store pickup is free.
    """
    if data.idempotency_key:
        existing = await db.execute(
            select(Order).where(Order.idempotency_key == data.idempotency_key)
        )
        found = existing.scalar_one_or_none()
        if found:
            return found

    if data.shipping_method == ShippingMethod.STORE_PICKUP:
        quote = build_pickup_option()
        distance_accurate = True
    else:
        options = await get_quotes(data.shipping.to_address())
        distance_accurate = options.distance_accurate
        if data.vehicle_type is None:
            quote = options.recommended
        else:
            quote = options.find(data.vehicle_type.value)
            if quote is None or quote.is_pickup:
                raise CheckoutError(f"Vehicle {data.vehicle_type.value} is not available for delivery")

    items = [
        OrderItem(
            product_id=item.product_id,
            variation_id=item.variation_id,
            product_name=item.product_name,
            variation=item.variation,
            quantity=item.quantity,
            price=Decimal(str(item.price)),
            total=Decimal(str(item.price)) * item.quantity,
        )
        for item in data.items
    ]
    subtotal = sum((item.total for item in items), Decimal("0"))
    shipping_fee = Decimal(quote.total_fare)

    order = Order(
        order_number=generate_order_number(),
        customer_id=data.customer_id,
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        shipping_method=data.shipping_method.value,
        shipping_address=data.shipping.street_address or quote.store.address,
        shipping_city=data.shipping.city,
        shipping_province=data.shipping.province,
        shipping_zip=data.shipping.zip_code,
        shipping_lat=data.shipping.lat,
        shipping_lng=data.shipping.lng,
        vehicle_type=None if quote.vehicle_type == STORE_PICKUP else quote.vehicle_type,
        zone_key=quote.zone_key,
        distance_km=quote.distance_km,
        estimated_minutes=quote.estimated_minutes,
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        total_amount=subtotal + shipping_fee,
        status=OrderStatus.ORDERED.value,
        payment_method=data.payment_method.value,
        payment_status=PaymentStatus.PENDING.value,
        notes=data.notes,
        idempotency_key=data.idempotency_key,
        items=items,
        events=[],
        reservations=[],
    )
    db.add(order)
    await db.flush()

    reserve_stock(order)
    order.events.append(OrderEvent(
        from_status=None,
        to_status=OrderStatus.ORDERED.value,
        actor_type=ActorType.CUSTOMER.value,
        actor_id=data.customer_id,
        metadata_json={
            "vehicle_type": quote.vehicle_type,
            "shipping_fee": quote.total_fare,
            "zone": quote.zone_key,
            "distance_km": quote.distance_km,
            "distance_accurate": distance_accurate,
        },
    ))
    await db.commit()

    logger.info(
        "Order %s placed: %s, %d item(s), shipping %s via %s",
        order.order_number, order.total_amount, len(items), shipping_fee, quote.vehicle_type,
    )
    dispatch_order_status(order, None)
    return order


# ── Status changes ─────────────────────────────────────────

async def transition_order(
    db: AsyncSession,
    order_number: str,
    target: OrderStatus,
    actor: Actor,
    expected_version: int | None = None,
    note: str | None = None,
    details: dict | None = None,
) -> Order:
    """
    Apply one lifecycle transition and commit it with its history event.

    Raises:
        OrderNotFound: no such order
        TransitionError subclasses: rejected or lost a concurrent race

    A rejected transition rolls the session back, which expires every
    instance it holds; re-read the order before using it again.
    """
    target = OrderStatus(target)
    order = await get_order_by_number(db, order_number, for_update=True)
    if order is None:
        raise OrderNotFound(order_number)

    previous = order.status
    if expected_version is not None and order.version != expected_version:
        await db.rollback()
        raise ConflictingTransition(
            order_number, previous, target.value,
            detail=f"order {order_number} changed since version {expected_version}",
        )

    try:
        lifecycle.transition(order, target, actor)
        for field, value in (details or {}).items():
            if field in OPERATOR_FIELDS and value is not None:
                setattr(order, field, value)
        order.events.append(OrderEvent(
            from_status=previous,
            to_status=target.value,
            actor_type=actor.actor_type.value,
            actor_id=actor.actor_id,
            note=note,
        ))
        await db.commit()
    except StaleDataError:
        await db.rollback()
        logger.warning("Order %s: concurrent update beat %s → %s", order_number, previous, target.value)
        raise ConflictingTransition(
            order_number, previous, target.value,
            detail=f"order {order_number} was changed by another request",
        ) from None
    except Exception:
        await db.rollback()
        raise

    dispatch_order_status(order, previous)
    return order


async def verify_receipt(
    db: AsyncSession,
    order_number: str | None = None,
    verification_code: str | None = None,
    email: str | None = None,
) -> tuple[Order, bool]:
    """
    Customer confirms receipt (typed order number or scanned QR payload).

    Returns:
        (order, already_verified)
    """
    if verification_code and verification_code.startswith(VERIFICATION_CODE_PREFIX):
        parts = verification_code.split("|")
        order_number = parts[1] if len(parts) > 1 and parts[1] else order_number
    if not order_number:
        raise CheckoutError("Order number or verification code required")

    order = await get_order_by_number(db, order_number)
    if order is None or (email and order.customer_email.lower() != email.strip().lower()):
        raise OrderNotFound(order_number)

    if order.status == OrderStatus.COMPLETED.value:
        return order, True
    if order.status not in VERIFIABLE_STATUSES:
        raise InvalidTransition(
            order_number, order.status, OrderStatus.COMPLETED.value,
            detail=f"Order cannot be verified yet. Current status: {order.status}",
        )

    order = await transition_order(
        db, order_number, OrderStatus.COMPLETED,
        Actor(ActorType.CUSTOMER, order.customer_id),
        note="Verified by customer",
        details={"customer_verified_at": utcnow()},
    )
    return order, False


async def auto_complete_orders(
    db: AsyncSession,
    older_than_days: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Complete delivered/picked-up orders with no status change for N days."""
    days = older_than_days if older_than_days is not None else settings.AUTO_COMPLETE_DAYS
    cutoff = (now or utcnow()) - timedelta(days=days)

    result = await db.execute(
        select(Order.order_number).where(
            Order.status.in_(VERIFIABLE_STATUSES),
            Order.status_changed_at < cutoff,
        )
    )
    candidates = list(result.scalars().all())

    completed = []
    for order_number in candidates:
        try:
            await transition_order(
                db, order_number, OrderStatus.COMPLETED, SYSTEM_ACTOR,
                note=f"Auto-completed after {days} days",
            )
        except TransitionError as e:
            logger.warning("Auto-complete skipped %s: %s", order_number, e)
            continue
        completed.append(order_number)

    if completed:
        logger.info("Auto-completed %d order(s)", len(completed))
    return completed
